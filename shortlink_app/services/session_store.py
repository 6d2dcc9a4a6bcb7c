from typing import Optional

from shortlink_app.models.link import SessionUser
from shortlink_app.store.keys import session_key
from shortlink_app.store.strategies import CommitResult, KeyValueStore


class SessionStore:
    """Pass-through storage of the user behind a login session"""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def store_user(self, session_id: str, user: SessionUser) -> CommitResult:
        return await self.store.set(session_key(session_id), user.model_dump(mode="json"))

    async def get_user(self, session_id: str) -> Optional[SessionUser]:
        entry = await self.store.get(session_key(session_id))
        if entry.value is None:
            return None
        return SessionUser.model_validate(entry.value)
