from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from fm_chat.domain.models import Turn
from fm_chat.ports.tokens import TokenCounter


@runtime_checkable
class TruncationStrategy(Protocol):
    """Выбирает реплики, которые влезают в лимит (overhead уже вычтен из max_tokens)."""

    def fit(
        self,
        turns: Sequence[Turn],
        *,
        counter: TokenCounter,
        max_tokens: int,
    ) -> list[Turn]:
        ...
