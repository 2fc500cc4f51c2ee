import pytest

from fm_chat.use_cases.budget import DEFAULT_BUDGET, TokenBudget


def test_default_budget_limits():
    assert DEFAULT_BUDGET.hard_limit == 4096
    assert DEFAULT_BUDGET.safe_limit == 3500


def test_budget_is_frozen():
    with pytest.raises(Exception):
        DEFAULT_BUDGET.safe_limit = 10


def test_budget_rejects_safe_above_hard():
    with pytest.raises(ValueError):
        TokenBudget(hard_limit=100, safe_limit=200)

    with pytest.raises(ValueError):
        TokenBudget(hard_limit=0, safe_limit=0)
