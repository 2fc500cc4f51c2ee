from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

Role = Literal["user", "assistant"]
PromptRole = Literal["system", "user", "assistant"]


def utcnow() -> datetime:
    """Всегда timezone-aware UTC."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Turn:
    id: str
    role: Role
    text: str = ""
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Conversation:
    """
    Владелец истории. Реплики только добавляются в конец,
    удаление диалога удаляет все его реплики.
    """
    conversation_id: str
    title: str = ""
    created_at: datetime = field(default_factory=utcnow)
    turns: List[Turn] = field(default_factory=list)

    def append_turn(self, turn: Turn) -> None:
        self.turns.append(turn)


@dataclass(frozen=True)
class Message:
    """Сообщение промпта, которое уходит в модель."""
    role: PromptRole
    content: str = ""
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ModelAvailability:
    available: bool
    reason: Optional[str] = None


class ContextMode(str, Enum):
    FULL = "full"
    SUMMARY = "summary"


class ContextWarning(str, Enum):
    SUMMARIZATION_UNAVAILABLE = "summarization_unavailable"
    CONTEXT_OVERFLOW = "context_overflow"


@dataclass(frozen=True)
class ContextDecision:
    mode: ContextMode
    estimated_tokens: int
    turns: Tuple[Turn, ...] = ()
    summary: Optional[str] = None
    original_tokens: int = 0
    degraded: bool = False
    truncated: bool = False
    warnings: Tuple[ContextWarning, ...] = ()
    failure: Optional[str] = None

    @property
    def payload(self):
        if self.mode is ContextMode.SUMMARY:
            return self.summary
        return self.turns

    def as_meta(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "estimated_tokens": self.estimated_tokens,
            "original_tokens": self.original_tokens,
            "turns": len(self.turns),
            "summary_applied": self.summary is not None,
            "degraded": self.degraded,
            "truncated": self.truncated,
            "warnings": [w.value for w in self.warnings],
            "failure": self.failure,
        }
