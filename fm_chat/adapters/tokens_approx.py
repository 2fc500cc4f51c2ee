from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from fm_chat.domain.models import Turn
from fm_chat.ports.tokens import TokenCounter


@dataclass(frozen=True)
class ApproxTokenCounter(TokenCounter):
    """
    Грубая оценка: число слов (split по пробельным символам) * 1.3, округление half-up.
    Это не настоящий токенизатор, а заглушка-эвристика: детерминированная и неотрицательная.
    """
    tokens_per_word: float = 1.3

    def count_text(self, text: str) -> int:
        words = len((text or "").split())
        return int(math.floor(words * self.tokens_per_word + 0.5))

    def count_turns(self, turns: Sequence[Turn]) -> int:
        return self.count_text(" ".join(t.text or "" for t in turns))
