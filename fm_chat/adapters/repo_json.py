from __future__ import annotations

import hashlib
import json
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from fm_chat.domain.models import Conversation, Turn, utcnow
from fm_chat.ports.repo import ConversationRepo

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


def _turn_to_dict(t: Turn) -> Dict[str, Any]:
    return {
        "id": t.id,
        "role": t.role,
        "text": t.text,
        "created_at": t.created_at.isoformat(),
    }


def _turn_from_dict(d: Dict[str, Any]) -> Turn:
    return Turn(
        id=d["id"],
        role=d["role"],
        text=d.get("text") or "",
        created_at=datetime.fromisoformat(d["created_at"]),
    )


class JsonFileConversationRepo(ConversationRepo):
    """
    Один JSON-файл на диалог:
    { "conversation_id": ..., "title": ..., "created_at": ..., "turns": [ {...}, ... ] }
    Реплики живут внутри файла диалога, поэтому delete удаляет их вместе с ним.
    """

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, conversation_id: str) -> Path:
        if _SAFE_ID.match(conversation_id) and not conversation_id.startswith("."):
            name = conversation_id
        else:
            name = hashlib.sha1(conversation_id.encode("utf-8")).hexdigest()
        return self.root / f"{name}.json"

    def _read(self, path: Path) -> Conversation:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Conversation(
            conversation_id=data["conversation_id"],
            title=data.get("title") or "",
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else utcnow(),
            turns=[_turn_from_dict(t) for t in data.get("turns", [])],
        )

    def exists(self, conversation_id: str) -> bool:
        return self._path(conversation_id).exists()

    def load(self, conversation_id: str) -> Conversation:
        path = self._path(conversation_id)
        if not path.exists():
            return Conversation(conversation_id=conversation_id)
        return self._read(path)

    def save(self, convo: Conversation) -> None:
        data = {
            "conversation_id": convo.conversation_id,
            "title": convo.title,
            "created_at": convo.created_at.isoformat(),
            "turns": [_turn_to_dict(t) for t in convo.turns],
        }
        path = self._path(convo.conversation_id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(path)

    def append_turn(self, conversation_id: str, turn: Turn) -> None:
        convo = self.load(conversation_id)
        convo.append_turn(turn)
        self.save(convo)

    def get_turns(self, conversation_id: str, limit: Optional[int] = None) -> List[Turn]:
        turns = self.load(conversation_id).turns
        if limit is not None:
            return turns[-limit:] if limit > 0 else []
        return turns

    def list_conversations(self) -> List[Conversation]:
        out: List[Conversation] = []
        for p in self.root.glob("*.json"):
            out.append(self._read(p))
        out.sort(key=lambda c: c.created_at, reverse=True)
        return out

    def delete(self, conversation_id: str) -> bool:
        path = self._path(conversation_id)
        if not path.exists():
            return False
        path.unlink()
        return True
