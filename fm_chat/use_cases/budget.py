from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenBudget:
    hard_limit: int = 4096
    safe_limit: int = 3500

    def __post_init__(self) -> None:
        if self.safe_limit <= 0 or self.hard_limit <= 0:
            raise ValueError("token limits must be positive")
        if self.safe_limit > self.hard_limit:
            raise ValueError(f"safe_limit ({self.safe_limit}) exceeds hard_limit ({self.hard_limit})")


DEFAULT_BUDGET = TokenBudget()
