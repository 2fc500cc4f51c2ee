from __future__ import annotations

from collections.abc import Sequence
from typing import Optional, Protocol, runtime_checkable

from fm_chat.domain.models import Turn


@runtime_checkable
class Summarizer(Protocol):
    """
    Сжимает историю в короткую сводку.
    Может упасть с SummarizationError (model_unavailable / guardrail_violation / unsupported_locale).
    """

    async def summarize(
        self,
        turns: Sequence[Turn],
        *,
        max_tokens: int,
        previous_summary: Optional[str] = None,
    ) -> str:
        ...
