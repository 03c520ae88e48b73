"""Client-local session storage.

Each user's whole session list is one JSON blob stored under the key
``chats_<userId>``, replaced wholesale on every save and removed once the
list is empty. A blob that cannot be parsed raises StorageError.
"""

import json
from pathlib import Path

from ..chat.models import ChatSession
from ..errors import StorageError


def storage_key(user_id: str) -> str:
    return f"chats_{user_id}"


class ChatStorage:
    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def _path(self, user_id: str) -> Path:
        return self._root / f"{storage_key(user_id)}.json"

    def load_chats(self, user_id: str) -> list[ChatSession]:
        path = self._path(user_id)
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return [ChatSession(**item) for item in data]
        except (json.JSONDecodeError, OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to load chats for {user_id}: {e}") from e

    def save_chats(self, user_id: str, chats: list[ChatSession]) -> None:
        path = self._path(user_id)
        try:
            if not chats:
                path.unlink(missing_ok=True)
                return
            self._root.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps([c.to_json() for c in chats], indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            raise StorageError(f"Failed to save chats for {user_id}: {e}") from e
