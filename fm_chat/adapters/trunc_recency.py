from __future__ import annotations

from typing import List, Sequence

from fm_chat.domain.models import Turn
from fm_chat.ports.tokens import TokenCounter
from fm_chat.ports.truncation import TruncationStrategy


class RecencyTruncation(TruncationStrategy):
    """
    Скользящее окно: набираем реплики с конца (самые новые), пока влезает.
    Порядок сохраняется, из середины ничего не выкидываем.
    """

    def fit(
        self,
        turns: Sequence[Turn],
        *,
        counter: TokenCounter,
        max_tokens: int
    ) -> List[Turn]:
        if not turns or max_tokens <= 0:
            return []

        kept_rev: List[Turn] = []
        for t in reversed(turns):
            trial = [t] + kept_rev[::-1]
            if counter.count_turns(trial) <= max_tokens:
                kept_rev.append(t)
            else:
                break

        return list(reversed(kept_rev))
