from __future__ import annotations

from typing import Protocol, runtime_checkable

from fm_chat.domain.models import Conversation, Turn


@runtime_checkable
class ConversationRepo(Protocol):
    """Персистентная история диалогов. delete удаляет диалог вместе со всеми репликами."""

    def load(self, conversation_id: str) -> Conversation:
        ...

    def exists(self, conversation_id: str) -> bool:
        ...

    def save(self, convo: Conversation) -> None:
        ...

    def append_turn(self, conversation_id: str, turn: Turn) -> None:
        ...

    def get_turns(self, conversation_id: str, limit: int | None = None) -> list[Turn]:
        ...

    def list_conversations(self) -> list[Conversation]:
        ...

    def delete(self, conversation_id: str) -> bool:
        ...
