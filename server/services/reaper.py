import asyncio
import os
import sys
from typing import Optional

from server.schemas import INACTIVITY_TIMEOUT, REAP_INTERVAL
from server.services.multiplexer import close_quietly
from server.services.session import SessionStore

# Debug flag: enable when running tests or when env var BATTLE_LINE_DEBUG is set
DEBUG = bool(os.getenv('BATTLE_LINE_DEBUG')) or ('unittest' in sys.modules) or ('PYTEST_CURRENT_TEST' in os.environ)


def _dbg(*args, **kwargs):
    if DEBUG:
        print(*args, **kwargs)


class Reaper:
    """Periodically evicts sessions nobody has touched for ``threshold`` seconds."""

    def __init__(self, store: SessionStore, threshold: float = INACTIVITY_TIMEOUT, interval: float = REAP_INTERVAL):
        self.store = store
        self.threshold = threshold
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    async def reap_once(self) -> int:
        reaped = self.store.reap_inactive(self.threshold)
        # sockets are closed only after every lock has been released
        for session, conns in reaped:
            for conn in conns:
                await close_quietly(conn, f"in session {session.session_id}")
            _dbg(f"Removed inactive session: {session.session_id}")
        if reaped:
            _dbg(f"Cleaned up {len(reaped)} inactive session(s)")
        return len(reaped)

    async def run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                await self.reap_once()
        except asyncio.CancelledError:
            _dbg("Stopped session cleanup")
            raise

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
