from __future__ import annotations

from enum import Enum


class ModelFailure(str, Enum):
    MODEL_UNAVAILABLE = "model_unavailable"
    GUARDRAIL_VIOLATION = "guardrail_violation"
    UNSUPPORTED_LOCALE = "unsupported_locale"


class ModelError(RuntimeError):
    """Модель не смогла ответить (недоступна, guardrail, неподдерживаемая локаль)."""

    def __init__(self, reason: ModelFailure, detail: str = ""):
        self.reason = ModelFailure(reason)
        self.detail = detail
        message = self.reason.value if not detail else f"{self.reason.value}: {detail}"
        super().__init__(message)


class SummarizationError(ModelError):
    """Внешняя суммаризация упала; менеджер контекста переходит в degraded-режим."""


class ConversationNotFound(KeyError):
    pass
