from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fm_chat.domain.errors import ConversationNotFound, ModelError, ModelFailure
from fm_chat.domain.models import Conversation, ContextDecision, Message, ModelAvailability, Turn
from fm_chat.ports.llm import LLMClient
from fm_chat.ports.repo import ConversationRepo
from fm_chat.use_cases.budget import DEFAULT_BUDGET, TokenBudget
from fm_chat.use_cases.context_manager import ContextBudgetManager

log = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


def _title_from(text: str, max_words: int = 6) -> str:
    words = (text or "").split()
    title = " ".join(words[:max_words])
    return title + ("..." if len(words) > max_words else "")


@dataclass
class ChatEngine:
    repo: ConversationRepo
    llm: LLMClient
    manager: ContextBudgetManager
    budget: TokenBudget = DEFAULT_BUDGET
    system_prompt: str = "You are a helpful assistant."
    reserve_output_tokens: int = 512

    # лок живёт, пока его держит или ждёт хотя бы один запрос
    _locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = field(
        default_factory=weakref.WeakValueDictionary, init=False, repr=False
    )

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    def build_prompt(self, decision: ContextDecision) -> List[Message]:
        messages = [Message(role="system", content=self.system_prompt)]
        if decision.summary:
            messages.append(
                Message(
                    role="system",
                    content="Summary of the earlier conversation:\n" + decision.summary,
                    meta={"type": "summary"},
                )
            )
        messages.extend(Message(role=t.role, content=t.text) for t in decision.turns)
        return messages

    async def preview_context(self, conversation_id: str) -> ContextDecision:
        if not await asyncio.to_thread(self.repo.exists, conversation_id):
            raise ConversationNotFound(conversation_id)
        convo = await asyncio.to_thread(self.repo.load, conversation_id)
        return await self.manager.decide(convo.turns, self.budget)

    async def handle_user_message(
        self, conversation_id: str, user_text: str, *, availability: Optional[ModelAvailability] = None
    ) -> str:
        text, _meta = await self.handle_user_message_ex(conversation_id, user_text, availability=availability)
        return text

    async def handle_user_message_ex(
        self,
        conversation_id: str,
        user_text: str,
        *,
        availability: Optional[ModelAvailability] = None,
    ) -> tuple[str, Dict[str, Any]]:
        if availability is not None and not availability.available:
            raise ModelError(ModelFailure.MODEL_UNAVAILABLE, availability.reason or "")

        async with self._lock_for(conversation_id):
            convo: Conversation = await asyncio.to_thread(self.repo.load, conversation_id)
            if not convo.title:
                convo.title = _title_from(user_text)

            user_turn = Turn(id=_new_id(), role="user", text=user_text, created_at=_now_utc())
            convo.append_turn(user_turn)

            decision = await self.manager.decide(convo.turns, self.budget)

            meta: Dict[str, Any] = {
                "conversation_id": conversation_id,
                "budget": {
                    "hard_limit": self.budget.hard_limit,
                    "safe_limit": self.budget.safe_limit,
                },
                "history_turns": len(convo.turns),
                "context": decision.as_meta(),
            }

            try:
                resp = await self.llm.generate(
                    self.build_prompt(decision),
                    max_output_tokens=self.reserve_output_tokens,
                )
            except ModelError:
                # реплика пользователя сохраняется, даже если модель не ответила
                await asyncio.to_thread(self.repo.save, convo)
                raise

            assistant_turn = Turn(id=_new_id(), role="assistant", text=resp.text, created_at=_now_utc())
            convo.append_turn(assistant_turn)
            await asyncio.to_thread(self.repo.save, convo)

        if decision.degraded or decision.truncated:
            log.warning(
                "degraded context for %s: %s",
                conversation_id,
                ", ".join(w.value for w in decision.warnings),
            )

        meta["llm_usage"] = resp.usage
        return resp.text, meta
