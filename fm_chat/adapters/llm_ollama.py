from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence, Dict, Any, Optional

import requests

from fm_chat.domain.errors import ModelError, ModelFailure
from fm_chat.domain.models import Message, ModelAvailability
from fm_chat.ports.llm import LLMClient, LLMResponse

log = logging.getLogger(__name__)


def _strip_trailing_slash(url: str) -> str:
    return url[:-1] if url.endswith("/") else url


@dataclass
class OllamaLLMClient(LLMClient):
    """
    Клиент к локальному Ollama. requests синхронный,
    поэтому HTTP-вызов уходит в рабочий поток через asyncio.to_thread.
    """
    base_url: str = "http://127.0.0.1:11434"
    model: str = "llama3.1:8b"
    temperature: float = 0.2
    timeout_s: int = 120

    session: Optional[requests.Session] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.base_url = _strip_trailing_slash(self.base_url)
        if self.session is None:
            self.session = requests.Session()

    async def check_availability(self) -> ModelAvailability:
        return await asyncio.to_thread(self._check_availability_sync)

    def _check_availability_sync(self) -> ModelAvailability:
        assert self.session is not None
        try:
            r = self.session.get(f"{self.base_url}/api/tags", timeout=5)
            r.raise_for_status()
            data = r.json() if r.content else {}
        except requests.RequestException as e:
            return ModelAvailability(available=False, reason=f"ollama unreachable: {e}")

        names = {m.get("name") for m in data.get("models", []) if isinstance(m, dict)}
        if names and self.model not in names:
            return ModelAvailability(available=False, reason=f"model {self.model} is not pulled")
        return ModelAvailability(available=True)

    async def generate(self, messages: Sequence[Message], *, max_output_tokens: int) -> LLMResponse:
        return await asyncio.to_thread(self._generate_sync, list(messages), max_output_tokens)

    def _generate_sync(self, messages: Sequence[Message], max_output_tokens: int) -> LLMResponse:
        assert self.session is not None

        ollama_msgs = [{"role": m.role, "content": (m.content or "")} for m in messages]

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": ollama_msgs,
            "stream": False,
            "options": {
                "temperature": float(self.temperature),
                "num_predict": int(max_output_tokens),
            },
        }

        try:
            r = self.session.post(f"{self.base_url}/api/chat", json=payload, timeout=self.timeout_s)
            r.raise_for_status()
            data = r.json() if r.content else {}
        except (requests.RequestException, ValueError) as e:
            log.warning("ollama request failed: %s", e)
            raise ModelError(ModelFailure.MODEL_UNAVAILABLE, str(e)) from e

        if not isinstance(data, dict):
            raise ModelError(ModelFailure.MODEL_UNAVAILABLE, f"unexpected ollama payload: {type(data).__name__}")

        text = ""
        msg = data.get("message")
        if isinstance(msg, dict):
            text = (msg.get("content") or "").strip()

        if not text:
            text = (data.get("response") or data.get("content") or "").strip()

        usage = {
            "input_tokens": int(data.get("prompt_eval_count") or 0),
            "output_tokens": int(data.get("eval_count") or 0),
        }

        return LLMResponse(text=text, usage=usage)
