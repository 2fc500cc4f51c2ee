import asyncio
from datetime import datetime, timezone

import pytest

from fm_chat.adapters.summarizer_mock import MockSummarizer
from fm_chat.adapters.tokens_approx import ApproxTokenCounter
from fm_chat.domain.errors import ModelError, ModelFailure, SummarizationError
from fm_chat.domain.models import ContextMode, ContextWarning, Turn
from fm_chat.use_cases.budget import DEFAULT_BUDGET, TokenBudget
from fm_chat.use_cases.context_manager import ContextBudgetManager, SummaryPolicy


def _turns(n, words, start=0):
    return [
        Turn(id=f"t{i}", role="user" if i % 2 == 0 else "assistant",
             text=" ".join([f"w{i}"] * words), created_at=datetime.now(timezone.utc))
        for i in range(start, start + n)
    ]


class RecordingSummarizer:
    def __init__(self, text):
        self.text = text
        self.calls = []

    async def summarize(self, turns, *, max_tokens, previous_summary=None):
        self.calls.append((list(turns), previous_summary))
        return self.text


class FailingSummarizer:
    def __init__(self, reason):
        self.reason = reason

    async def summarize(self, turns, *, max_tokens, previous_summary=None):
        raise SummarizationError(self.reason, "boom")


class HangingSummarizer:
    def __init__(self):
        self.started = asyncio.Event()

    async def summarize(self, turns, *, max_tokens, previous_summary=None):
        self.started.set()
        await asyncio.sleep(3600)
        return "never"


def test_estimate_tokens_is_idempotent():
    m = ContextBudgetManager(ApproxTokenCounter())
    text = "some words to estimate here"
    assert m.estimate_tokens(text) == m.estimate_tokens(text) == 7
    assert m.estimate_tokens("") == 0


def test_total_tokens_is_monotonic_when_appending():
    m = ContextBudgetManager(ApproxTokenCounter())
    history = _turns(30, 7)
    totals = [m.total_tokens(history[:i]) for i in range(len(history) + 1)]
    assert totals[0] == m.framing_overhead
    assert all(a <= b for a, b in zip(totals, totals[1:]))


async def test_small_history_goes_full():
    # 10 реплик по 5 слов: 50 * 1.3 = 65 + overhead
    summarizer = RecordingSummarizer("unused")
    m = ContextBudgetManager(ApproxTokenCounter(), summarizer)
    history = _turns(10, 5)

    d = await m.decide(history, DEFAULT_BUDGET)

    assert d.mode is ContextMode.FULL
    assert d.turns == tuple(history)
    assert d.payload == tuple(history)
    assert d.estimated_tokens == 65 + m.framing_overhead
    assert d.original_tokens == d.estimated_tokens
    assert not d.degraded and not d.truncated and d.warnings == ()
    assert summarizer.calls == []


async def test_empty_history_goes_full():
    m = ContextBudgetManager(ApproxTokenCounter(), RecordingSummarizer("x"))
    d = await m.decide([])
    assert d.mode is ContextMode.FULL
    assert d.turns == ()
    assert d.estimated_tokens == m.framing_overhead


async def test_long_history_is_summarized_under_safe_limit():
    summarizer = MockSummarizer()
    m = ContextBudgetManager(ApproxTokenCounter(), summarizer)
    history = _turns(500, 20)

    d = await m.decide(history, DEFAULT_BUDGET)

    assert d.mode is ContextMode.SUMMARY
    assert d.original_tokens == 13000 + m.framing_overhead
    assert d.summary
    assert d.payload == d.summary
    assert d.estimated_tokens <= DEFAULT_BUDGET.safe_limit
    assert d.estimated_tokens == m.total_tokens(d.turns, d.summary)
    assert 0 < len(d.turns) < len(history)
    assert d.turns == tuple(history[-len(d.turns):])
    assert not d.degraded and not d.truncated


async def test_summary_is_recomputed_until_it_fits():
    first = " ".join(["s"] * 100)  # 130 токенов
    summarizer = RecordingSummarizer(first)
    m = ContextBudgetManager(
        ApproxTokenCounter(),
        summarizer,
        policy=SummaryPolicy(max_summary_tokens=50),
    )
    budget = TokenBudget(hard_limit=400, safe_limit=300)
    history = _turns(30, 10)  # 390 + 32

    d = await m.decide(history, budget)

    assert d.mode is ContextMode.SUMMARY
    assert len(summarizer.calls) == 2
    first_batch, prev = summarizer.calls[0]
    assert prev is None
    assert [t.id for t in first_batch] == [f"t{i}" for i in range(14)]
    second_batch, prev = summarizer.calls[1]
    assert prev == first
    assert [t.id for t in second_batch] == [f"t{i}" for i in range(14, 20)]
    assert [t.id for t in d.turns] == [f"t{i}" for i in range(20, 30)]
    assert d.estimated_tokens == 292


async def test_summary_rounds_are_bounded():
    huge = " ".join(["s"] * 200)  # 260 токенов, никогда не влезает с хвостом
    summarizer = RecordingSummarizer(huge)
    m = ContextBudgetManager(
        ApproxTokenCounter(),
        summarizer,
        policy=SummaryPolicy(max_summary_tokens=10, max_rounds=2),
    )
    budget = TokenBudget(hard_limit=1000, safe_limit=300)

    d = await m.decide(_turns(40, 10), budget)

    assert d.mode is ContextMode.SUMMARY
    assert len(summarizer.calls) <= 3
    assert len(d.turns) == 1
    assert d.turns[0].id == "t39"


async def test_latest_turn_is_truncated_when_summary_plus_latest_overflow():
    summarizer = RecordingSummarizer("short summary text")
    m = ContextBudgetManager(
        ApproxTokenCounter(),
        summarizer,
        policy=SummaryPolicy(max_summary_tokens=50),
    )
    budget = TokenBudget(hard_limit=150, safe_limit=100)
    history = _turns(2, 10) + _turns(1, 200, start=2)

    d = await m.decide(history, budget)

    assert d.mode is ContextMode.SUMMARY
    assert d.truncated is True
    assert ContextWarning.CONTEXT_OVERFLOW in d.warnings
    assert d.estimated_tokens <= budget.hard_limit
    assert len(d.turns) == 1
    latest = d.turns[0]
    assert latest.id == "t2"
    assert history[-1].text.startswith(latest.text)
    assert len(latest.text.split()) == 88
    # исходная реплика не меняется
    assert len(history[-1].text.split()) == 200


async def test_summarization_failure_falls_back_to_sliding_window():
    m = ContextBudgetManager(ApproxTokenCounter(), FailingSummarizer(ModelFailure.MODEL_UNAVAILABLE))
    history = _turns(500, 20)

    d = await m.decide(history, DEFAULT_BUDGET)

    assert d.mode is ContextMode.FULL
    assert d.degraded is True
    assert d.failure == "model_unavailable"
    assert ContextWarning.SUMMARIZATION_UNAVAILABLE in d.warnings
    assert d.summary is None
    assert 0 < len(d.turns) < len(history)
    assert d.turns == tuple(history[-len(d.turns):])
    assert d.estimated_tokens <= DEFAULT_BUDGET.hard_limit
    # следующая по старшинству реплика уже не влезает
    assert m.total_tokens(history[-len(d.turns) - 1:]) > DEFAULT_BUDGET.hard_limit


@pytest.mark.parametrize(
    "reason",
    [ModelFailure.GUARDRAIL_VIOLATION, ModelFailure.UNSUPPORTED_LOCALE],
)
async def test_fallback_reports_failure_reason(reason):
    m = ContextBudgetManager(ApproxTokenCounter(), FailingSummarizer(reason))
    d = await m.decide(_turns(500, 20))
    assert d.degraded is True
    assert d.failure == reason.value


async def test_fallback_always_drops_oldest_turn():
    m = ContextBudgetManager(ApproxTokenCounter(), FailingSummarizer(ModelFailure.MODEL_UNAVAILABLE))
    budget = TokenBudget(hard_limit=200, safe_limit=100)
    history = _turns(4, 20)  # 104 + 32: выше safe, но ниже hard

    d = await m.decide(history, budget)

    assert d.degraded is True
    assert d.turns == tuple(history[1:])


async def test_no_summarizer_means_degraded():
    m = ContextBudgetManager(ApproxTokenCounter(), None)
    d = await m.decide(_turns(500, 20))
    assert d.mode is ContextMode.FULL
    assert d.degraded is True
    assert d.failure == "model_unavailable"


async def test_summarization_timeout_means_degraded():
    m = ContextBudgetManager(
        ApproxTokenCounter(),
        HangingSummarizer(),
        policy=SummaryPolicy(timeout_s=0.01),
    )
    d = await m.decide(_turns(500, 20))
    assert d.degraded is True
    assert d.failure == "timeout"


async def test_cancellation_propagates():
    summarizer = HangingSummarizer()
    m = ContextBudgetManager(
        ApproxTokenCounter(),
        summarizer,
        policy=SummaryPolicy(timeout_s=None),
    )

    task = asyncio.create_task(m.decide(_turns(500, 20)))
    await summarizer.started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


async def test_single_huge_turn_is_truncated_without_summary():
    summarizer = RecordingSummarizer("unused")
    m = ContextBudgetManager(ApproxTokenCounter(), summarizer)
    history = _turns(1, 5000)

    d = await m.decide(history)

    assert d.mode is ContextMode.FULL
    assert d.truncated is True
    assert d.estimated_tokens <= DEFAULT_BUDGET.hard_limit
    assert summarizer.calls == []


class BaseErrorSummarizer:
    async def summarize(self, turns, *, max_tokens, previous_summary=None):
        raise ModelError(ModelFailure.GUARDRAIL_VIOLATION, "blocked")


async def test_plain_model_error_from_summarizer_means_degraded():
    m = ContextBudgetManager(ApproxTokenCounter(), BaseErrorSummarizer())
    d = await m.decide(_turns(500, 20))
    assert d.mode is ContextMode.FULL
    assert d.degraded is True
    assert d.failure == "guardrail_violation"


@pytest.mark.parametrize("text", ["", "   \n "])
async def test_empty_summary_means_degraded(text):
    m = ContextBudgetManager(ApproxTokenCounter(), RecordingSummarizer(text))
    history = _turns(500, 20)

    d = await m.decide(history)

    assert d.mode is ContextMode.FULL
    assert d.degraded is True
    assert d.summary is None
    assert d.failure == "model_unavailable"
    assert ContextWarning.SUMMARIZATION_UNAVAILABLE in d.warnings
    assert d.turns == tuple(history[-len(d.turns):])
