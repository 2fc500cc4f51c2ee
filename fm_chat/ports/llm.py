from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, TypedDict, runtime_checkable
from collections.abc import Sequence

from fm_chat.domain.models import Message, ModelAvailability


class LLMUsage(TypedDict, total=False):
    input_tokens: int
    output_tokens: int


@dataclass(frozen=True)
class LLMResponse:
    text: str
    usage: LLMUsage = field(default_factory=dict)


@runtime_checkable
class LLMClient(Protocol):
    """Общий интерфейс к модели (реальной/мок). Ошибки — ModelError."""

    async def generate(self, messages: Sequence[Message], *, max_output_tokens: int) -> LLMResponse:
        ...

    async def check_availability(self) -> ModelAvailability:
        ...
