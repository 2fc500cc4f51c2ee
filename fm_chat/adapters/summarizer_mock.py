from __future__ import annotations

from typing import Optional, Sequence

from fm_chat.adapters.tokens_approx import ApproxTokenCounter
from fm_chat.domain.models import Turn
from fm_chat.ports.summarizer import Summarizer

_HEADER = "Summary (auto):"


class MockSummarizer(Summarizer):
    """
    Детерминированная "суммаризация" без сети:
    - превращает реплики в пункты
    - грубо режет по длине, чтобы уложиться в max_tokens (по оценке ApproxTokenCounter)
    """

    def __init__(self, max_lines: int = 15, snippet_words: int = 24):
        self.max_lines = max_lines
        self.snippet_words = snippet_words
        self._counter = ApproxTokenCounter()

    async def summarize(
        self,
        turns: Sequence[Turn],
        *,
        max_tokens: int,
        previous_summary: Optional[str] = None,
    ) -> str:
        lines = []
        if previous_summary:
            prev = " ".join(previous_summary.split()[: self.snippet_words])
            lines.append(f"- earlier: {prev}")

        for t in turns:
            role = "U" if t.role == "user" else "A"
            words = (t.text or "").split()
            snippet = " ".join(words[: self.snippet_words])
            if len(words) > self.snippet_words:
                snippet += " ..."
            lines.append(f"- {role}: {snippet}")

        lines = lines[: self.max_lines]
        text = _HEADER + "\n" + "\n".join(lines) if lines else _HEADER + " (empty)"

        while self._counter.count_text(text) > max_tokens and len(lines) > 1:
            lines = lines[:-1]
            text = _HEADER + "\n" + "\n".join(lines)

        if self._counter.count_text(text) > max_tokens:
            max_words = max(1, int(max_tokens / self._counter.tokens_per_word))
            text = " ".join(text.split()[:max_words])

        return text
