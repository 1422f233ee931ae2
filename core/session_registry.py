# Copy-on-write registry of mirror sessions, keyed by Slack user id
import threading
from types import MappingProxyType
from typing import List, Mapping, Optional

from core.models import MirrorSession


class SessionRegistry:
    """Holds one MirrorSession per Slack member.

    Readers grab the published snapshot without locking. Writers copy the
    snapshot, apply one change and publish the copy while holding
    ``_write_lock``; the lock is never held across an ``await``.
    """

    def __init__(self, logger=None):
        self.logger = logger
        self._write_lock = threading.Lock()
        self._snapshot: Mapping[str, MirrorSession] = MappingProxyType({})

    def snapshot(self) -> Mapping[str, MirrorSession]:
        return self._snapshot

    def sessions(self) -> List[MirrorSession]:
        return list(self._snapshot.values())

    def get(self, user_id: str) -> Optional[MirrorSession]:
        return self._snapshot.get(user_id)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._snapshot

    def __len__(self) -> int:
        return len(self._snapshot)

    def put(self, user_id: str, session: MirrorSession) -> None:
        with self._write_lock:
            updated = dict(self._snapshot)
            updated[user_id] = session
            self._snapshot = MappingProxyType(updated)

    async def remove(self, user_id: str) -> Optional[MirrorSession]:
        with self._write_lock:
            if user_id not in self._snapshot:
                return None
            updated = dict(self._snapshot)
            session = updated.pop(user_id)
            # Disconnect handlers check this flag, so it flips before close
            session.active = False
            self._snapshot = MappingProxyType(updated)

        if session.connection is not None:
            try:
                await session.connection.close()
            except Exception as exc:
                if self.logger:
                    self.logger.warning(f"Error closing mirror connection for {session.nickname}: {exc}")
        return session

    def owns_nick(self, nick: str) -> bool:
        for session in self._snapshot.values():
            connection = session.connection
            if connection is not None and connection.owns_nick(nick):
                return True
        return False
