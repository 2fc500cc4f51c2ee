from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from fm_chat.domain.errors import ModelError, ModelFailure
from fm_chat.domain.models import Message, ModelAvailability
from fm_chat.ports.llm import LLMClient, LLMResponse


def _last_user(messages: Sequence[Message]) -> Optional[Message]:
    return next((m for m in reversed(messages) if m.role == "user"), None)


def _usage(messages: Sequence[Message], text: str) -> Dict[str, int]:
    return {
        "input_tokens": sum(len((m.content or "").split()) for m in messages),
        "output_tokens": len(text.split()),
    }


@dataclass
class EchoMockLLM(LLMClient):
    available: bool = True
    unavailable_reason: str = "mock model disabled"

    async def check_availability(self) -> ModelAvailability:
        if self.available:
            return ModelAvailability(available=True)
        return ModelAvailability(available=False, reason=self.unavailable_reason)

    async def generate(self, messages: Sequence[Message], *, max_output_tokens: int) -> LLMResponse:
        if not self.available:
            raise ModelError(ModelFailure.MODEL_UNAVAILABLE, self.unavailable_reason)
        last_user = _last_user(messages)
        text = f"[mock] Reply to: {last_user.content if last_user else ''}"
        return LLMResponse(text=text, usage=_usage(messages, text))


@dataclass
class ScriptedMockLLM(LLMClient):
    rules: Dict[str, str]
    fallback: str = "[mock] I don't know what to say."

    async def check_availability(self) -> ModelAvailability:
        return ModelAvailability(available=True)

    async def generate(self, messages: Sequence[Message], *, max_output_tokens: int) -> LLMResponse:
        last_user = _last_user(messages)
        prompt = (last_user.content if last_user else "").lower()

        for k, v in self.rules.items():
            if k.lower() in prompt:
                return LLMResponse(text=v, usage=_usage(messages, v))

        return LLMResponse(text=self.fallback, usage=_usage(messages, self.fallback))
