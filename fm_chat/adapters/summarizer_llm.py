from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from fm_chat.domain.errors import ModelError, SummarizationError
from fm_chat.domain.models import Message, Turn
from fm_chat.ports.llm import LLMClient
from fm_chat.ports.summarizer import Summarizer

log = logging.getLogger(__name__)


@dataclass
class LLMSummarizer(Summarizer):
    llm: LLMClient

    async def summarize(
        self,
        turns: Sequence[Turn],
        *,
        max_tokens: int,
        previous_summary: Optional[str] = None,
    ) -> str:
        lines = []
        for t in turns:
            content = (t.text or "").strip()
            if not content:
                continue
            lines.append(f"{t.role.upper()}: {content}")

        if not lines and not previous_summary:
            return "Summary: (empty)"

        transcript = "\n".join(lines) if lines else "(no new messages)"
        earlier = f"CURRENT SUMMARY:\n{previous_summary}\n\n" if previous_summary else ""

        prompt = (
            "Summarize the conversation briefly (5-10 bullet points). "
            "Keep facts, decisions, commitments and user preferences. "
            "Merge the current summary with the new messages if one is given.\n\n"
            f"{earlier}"
            f"CONVERSATION:\n{transcript}\n"
        )

        try:
            resp = await self.llm.generate(
                [
                    Message(role="system", content="You are a precise summarizer. Output concise bullet points."),
                    Message(role="user", content=prompt),
                ],
                max_output_tokens=int(max_tokens),
            )
        except SummarizationError:
            raise
        except ModelError as e:
            log.warning("summarization failed: %s", e)
            raise SummarizationError(e.reason, e.detail) from e

        return (resp.text or "").strip()
