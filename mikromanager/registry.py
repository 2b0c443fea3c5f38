import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from .errors import DisconnectError
from .models import Session


logger = logging.getLogger(__name__)


class _RouterLock:
    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class SessionRegistry:
    """In-memory router id -> Session map. Owns the lifecycle of every handle.

    Created together with the app and torn down (all sessions disconnected)
    at shutdown. Nothing is persisted: after a restart every router must be
    connected again.
    """

    def __init__(self):
        self._sessions: Dict[int, Session] = {}
        self._locks: Dict[int, _RouterLock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, router_id: int) -> bool:
        return router_id in self._sessions

    def router_ids(self) -> List[int]:
        return list(self._sessions)

    def get(self, router_id: int) -> Optional[Session]:
        return self._sessions.get(router_id)

    @asynccontextmanager
    async def lock(self, router_id: int) -> AsyncIterator[None]:
        """Serialise connect and operations on one router id.

        The lock is dropped once nobody holds or waits for it and the router
        has no session, so unknown ids do not accumulate.
        """
        entry = self._locks.get(router_id)
        if entry is None:
            entry = self._locks[router_id] = _RouterLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if not entry.users and router_id not in self._sessions and self._locks.get(router_id) is entry:
                del self._locks[router_id]

    async def put(self, router_id: int, session: Session) -> None:
        previous = self._sessions.get(router_id)
        if previous is not None and previous is not session:
            logger.info(
                "Replacing %s session for router %s (%s)", previous.kind.value, router_id, previous.host
            )
            try:
                await self._close(previous)
            except DisconnectError as e:
                logger.warning("Disconnect of router %s failed: %s", router_id, e)
        self._sessions[router_id] = session

    async def remove(self, router_id: int) -> None:
        session = self._sessions.pop(router_id, None)
        if session is None:
            return
        try:
            await self._close(session)
        except DisconnectError as e:
            # best effort, the session is gone either way
            logger.warning("Disconnect of router %s failed: %s", router_id, e)
        logger.info("Router %s disconnected (%s)", router_id, session.host)

    async def close_all(self) -> None:
        for router_id in self.router_ids():
            await self.remove(router_id)
        self._locks.clear()

    async def _close(self, session: Session) -> None:
        try:
            await session.adapter.disconnect(session.handle)
        except Exception as e:
            raise DisconnectError(f"{session.kind.value}: {e}") from e
