from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from fm_chat.adapters.trunc_recency import RecencyTruncation
from fm_chat.domain.errors import ModelError, ModelFailure, SummarizationError
from fm_chat.domain.models import ContextDecision, ContextMode, ContextWarning, Turn
from fm_chat.ports.summarizer import Summarizer
from fm_chat.ports.tokens import TokenCounter
from fm_chat.ports.truncation import TruncationStrategy
from fm_chat.use_cases.budget import DEFAULT_BUDGET, TokenBudget

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SummaryPolicy:
    max_summary_tokens: int = 512
    max_rounds: int = 3
    timeout_s: Optional[float] = 30.0


class ContextBudgetManager:
    """
    Решает, что отправить в модель: всю историю (FULL) или сводку + свежий хвост (SUMMARY).

    - оценка = токены склейки текстов реплик (+ сводка) + фиксированный overhead на запрос
    - укладываемся в safe_limit -> FULL, история как есть
    - иначе просим у Summarizer сводку старой части и пересчитываем, пока не влезет
      или пока не останутся только сводка и последняя реплика
    - сводка + последняя реплика > hard_limit -> режем текст последней реплики (truncated)
    - суммаризация упала -> FULL по скользящему окну под hard_limit (degraded)

    Состояния между вызовами нет: режим выбирается заново на каждый запрос.
    """

    def __init__(
        self,
        counter: TokenCounter,
        summarizer: Optional[Summarizer] = None,
        *,
        truncation: Optional[TruncationStrategy] = None,
        policy: Optional[SummaryPolicy] = None,
        framing_overhead: int = 32,
    ):
        self.counter = counter
        self.summarizer = summarizer
        self.truncation = truncation or RecencyTruncation()
        self.policy = policy or SummaryPolicy()
        self.framing_overhead = max(0, int(framing_overhead))

    def estimate_tokens(self, text: str) -> int:
        return max(0, int(self.counter.count_text(text or "")))

    def total_tokens(self, turns: Sequence[Turn], summary: Optional[str] = None) -> int:
        total = self.counter.count_turns(turns) + self.framing_overhead
        if summary:
            total += self.estimate_tokens(summary)
        return total

    async def decide(self, history: Sequence[Turn], budget: TokenBudget = DEFAULT_BUDGET) -> ContextDecision:
        turns = list(history)
        total = self.total_tokens(turns)

        if total <= budget.safe_limit:
            log.debug("context fits: %d <= %d tokens, %d turns", total, budget.safe_limit, len(turns))
            return ContextDecision(
                mode=ContextMode.FULL,
                estimated_tokens=total,
                turns=tuple(turns),
                original_tokens=total,
            )

        if len(turns) == 1:
            # сжимать нечего: только последняя реплика
            kept, _, truncated = self._fit_latest(turns[0], None, budget.hard_limit)
            return ContextDecision(
                mode=ContextMode.FULL,
                estimated_tokens=self.total_tokens(kept),
                turns=tuple(kept),
                original_tokens=total,
                truncated=truncated,
                warnings=(ContextWarning.CONTEXT_OVERFLOW,) if truncated else (),
            )

        log.info("context over safe limit: %d > %d tokens, summarizing", total, budget.safe_limit)
        try:
            return await self._summarized(turns, total, budget)
        except ModelError as e:
            log.warning("summarization unavailable (%s), falling back to sliding window", e.reason.value)
            return self._degraded(turns, total, budget, failure=e.reason.value)
        except asyncio.TimeoutError:
            log.warning("summarization timed out after %ss, falling back to sliding window", self.policy.timeout_s)
            return self._degraded(turns, total, budget, failure="timeout")

    async def _request_summary(self, turns: Sequence[Turn], previous_summary: Optional[str]) -> str:
        if self.summarizer is None:
            raise SummarizationError(ModelFailure.MODEL_UNAVAILABLE, "no summarizer configured")

        coro = self.summarizer.summarize(
            turns,
            max_tokens=self.policy.max_summary_tokens,
            previous_summary=previous_summary,
        )
        if self.policy.timeout_s:
            text = await asyncio.wait_for(coro, timeout=self.policy.timeout_s)
        else:
            text = await coro

        text = (text or "").strip()
        if not text:
            raise SummarizationError(ModelFailure.MODEL_UNAVAILABLE, "empty summary")
        return text

    async def _summarized(self, turns: List[Turn], total: int, budget: TokenBudget) -> ContextDecision:
        tail_room = budget.safe_limit - self.framing_overhead - self.policy.max_summary_tokens
        kept = self.truncation.fit(turns, counter=self.counter, max_tokens=tail_room) or turns[-1:]
        pending = turns[: len(turns) - len(kept)]

        summary: Optional[str] = None
        rounds = 0
        while True:
            rounds += 1
            summary = await self._request_summary(pending, summary)
            estimate = self.total_tokens(kept, summary)
            log.debug("summary round %d: %d tokens, %d turns kept", rounds, estimate, len(kept))
            if estimate <= budget.safe_limit or len(kept) == 1:
                break

            if rounds >= self.policy.max_rounds:
                refit = kept[-1:]
            else:
                room = budget.safe_limit - self.framing_overhead - self.estimate_tokens(summary)
                refit = self.truncation.fit(kept, counter=self.counter, max_tokens=room) or kept[-1:]
                if len(refit) >= len(kept):
                    refit = kept[1:]
            pending = kept[: len(kept) - len(refit)]
            kept = refit

        truncated = False
        if self.total_tokens(kept, summary) > budget.hard_limit:
            kept, summary, truncated = self._fit_latest(kept[-1], summary, budget.hard_limit)

        warnings: Tuple[ContextWarning, ...] = (ContextWarning.CONTEXT_OVERFLOW,) if truncated else ()
        return ContextDecision(
            mode=ContextMode.SUMMARY,
            estimated_tokens=self.total_tokens(kept, summary),
            turns=tuple(kept),
            summary=summary,
            original_tokens=total,
            truncated=truncated,
            warnings=warnings,
        )

    def _degraded(self, turns: List[Turn], total: int, budget: TokenBudget, *, failure: str) -> ContextDecision:
        room = budget.hard_limit - self.framing_overhead
        window = self.truncation.fit(turns, counter=self.counter, max_tokens=room)
        if len(window) >= len(turns):
            # degraded-режим всегда отбрасывает хотя бы самую старую реплику
            window = window[1:]

        truncated = False
        if not window:
            window, _, truncated = self._fit_latest(turns[-1], None, budget.hard_limit)

        warnings = [ContextWarning.SUMMARIZATION_UNAVAILABLE]
        if truncated:
            warnings.append(ContextWarning.CONTEXT_OVERFLOW)

        return ContextDecision(
            mode=ContextMode.FULL,
            estimated_tokens=self.total_tokens(window),
            turns=tuple(window),
            original_tokens=total,
            degraded=True,
            truncated=truncated,
            warnings=tuple(warnings),
            failure=failure,
        )

    def _fit_latest(
        self, latest: Turn, summary: Optional[str], limit: int
    ) -> Tuple[List[Turn], Optional[str], bool]:
        truncated = False
        room = limit - self.framing_overhead

        if summary and self.estimate_tokens(summary) >= room:
            summary = self._truncate_text(summary, room // 2)
            truncated = True

        latest_room = room - (self.estimate_tokens(summary) if summary else 0)
        if self.estimate_tokens(latest.text) > latest_room:
            latest = replace(latest, text=self._truncate_text(latest.text, latest_room))
            truncated = True

        return [latest], summary, truncated

    def _truncate_text(self, text: str, max_tokens: int) -> str:
        words = (text or "").split()
        if max_tokens <= 0 or not words:
            return ""

        lo, hi = 0, len(words)
        best = ""
        while lo <= hi:
            mid = (lo + hi) // 2
            trial = " ".join(words[:mid])
            if self.estimate_tokens(trial) <= max_tokens:
                best = trial
                lo = mid + 1
            else:
                hi = mid - 1
        return best
