from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from fm_chat.domain.models import Turn
from fm_chat.ports.tokens import TokenCounter


@dataclass
class TiktokenTokenCounter(TokenCounter):
    """
    Точный подсчёт через tiktoken вместо эвристики.
    Форма алгоритма менеджера контекста не меняется, меняется только оценка.
    """
    encoding_name: str = "cl100k_base"

    def __post_init__(self) -> None:
        import tiktoken
        self._enc = tiktoken.get_encoding(self.encoding_name)

    def count_text(self, text: str) -> int:
        return len(self._enc.encode(text or ""))

    def count_turns(self, turns: Sequence[Turn]) -> int:
        return self.count_text(" ".join(t.text or "" for t in turns))
