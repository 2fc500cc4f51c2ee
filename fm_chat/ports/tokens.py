from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from fm_chat.domain.models import Turn


@runtime_checkable
class TokenCounter(Protocol):
    """
    Оценка числа токенов.
    count_turns считает текст всех реплик одной склейкой, без служебного overhead:
    overhead на роли/инструкции добавляется один раз на запрос менеджером контекста.
    """

    def count_text(self, text: str) -> int:
        ...

    def count_turns(self, turns: Sequence[Turn]) -> int:
        ...
