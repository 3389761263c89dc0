import os
import sys
import time
import uuid
from typing import Callable, Dict, Optional, Protocol

from server.schemas import (
    MAX_PLAYERS,
    MIN_PLAYERS,
    ClientMessage,
    SessionInfo,
    SessionListResponse,
)
from server.services import rules
from server.services.state import MatchState
from server.utils.audit import audit_close, audit_write
from server.utils.rwlock import RWLock

# Debug flag: enable when running tests or when env var BATTLE_LINE_DEBUG is set
DEBUG = bool(os.getenv('BATTLE_LINE_DEBUG')) or ('unittest' in sys.modules) or ('PYTEST_CURRENT_TEST' in os.environ)


def _dbg(*args, **kwargs):
    if DEBUG:
        print(*args, **kwargs)


class Connection(Protocol):
    """What the core needs from a client socket (Starlette's WebSocket satisfies it)."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class SessionNotFound(KeyError):
    pass


class SessionFull(Exception):
    pass


class Session:
    """One match instance: its state, its seats, and the sockets sitting in them.

    ``state.lock`` guards the MatchState, ``clients_lock`` guards ``clients``
    and ``last_activity``. Lock order is state before clients.
    """

    def __init__(self, session_id: str, capacity: int, now: float):
        self.session_id = session_id
        self.capacity = capacity
        self.state = MatchState(capacity=capacity)
        self.clients: Dict[str, Connection] = {}
        self.clients_lock = RWLock()
        self.last_activity: float = now

    def touch(self, now: float) -> None:
        with self.clients_lock.write():
            self.last_activity = now

    def idle_for(self, now: float) -> float:
        with self.clients_lock.read():
            return now - self.last_activity

    def register(self, player_id: str, conn: Connection) -> None:
        """Seat ``conn`` for ``player_id``, replacing whatever socket held the seat."""
        with self.clients_lock.write():
            self.clients[player_id] = conn

    def deregister(self, player_id: str, conn: Connection) -> bool:
        """Drop ``conn`` only if it is still the socket seated for ``player_id``."""
        with self.clients_lock.write():
            if self.clients.get(player_id) is conn:
                del self.clients[player_id]
                return True
        return False

    def connections(self) -> Dict[str, Connection]:
        with self.clients_lock.read():
            return dict(self.clients)

    def client_count(self) -> int:
        with self.clients_lock.read():
            return len(self.clients)

    def game_started(self) -> bool:
        with self.state.lock.read():
            return self.state.game_started

    def apply_action(self, player_id: str, msg: ClientMessage, rng=None) -> list[str]:
        """Validate and apply one action as a single exclusive critical section."""
        with self.state.lock.write():
            msgs = rules.apply_action(self.state, player_id, msg, rng)
        if not msgs:
            audit_write(self.session_id, {"type": "action", "player_id": player_id, "action": msg.action})
        return msgs

    def snapshots(self, player_ids, message_type: str = "") -> dict:
        """Build one projected message per player id under shared access."""
        with self.state.lock.read():
            return {
                pid: self.state.build_message(self.session_id, pid, message_type)
                for pid in player_ids
            }


class SessionStore:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = RWLock()
        self._clock = clock

    def _new_id(self) -> str:
        # caller holds the registry write lock
        while True:
            sid = uuid.uuid4().hex[:8]
            if sid not in self._sessions:
                return sid

    def create(self, capacity: int) -> Session:
        if not MIN_PLAYERS <= capacity <= MAX_PLAYERS:
            raise ValueError(f"numberOfPlayers must be between {MIN_PLAYERS} and {MAX_PLAYERS}")
        with self._lock.write():
            sid = self._new_id()
            session = Session(sid, capacity, self._clock())
            self._sessions[sid] = session
        _dbg(f"session {sid} created for {capacity} players")
        audit_write(sid, {"type": "session_start", "capacity": capacity})
        return session

    def join(self, session_id: str, player_name: str) -> str:
        with self._lock.write():
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            with session.state.lock.write():
                if len(session.state.players) >= session.capacity:
                    raise SessionFull(session_id)
                player = session.state.add_player(player_name)
        audit_write(session_id, {"type": "join", "player_id": player.id, "name": player_name})
        return player.id

    def get(self, session_id: str) -> Session:
        with self._lock.read():
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def touch(self, session: Session) -> None:
        session.touch(self._clock())

    def list_sessions(self) -> SessionListResponse:
        with self._lock.read():
            sessions = list(self._sessions.values())
            items = [
                SessionInfo(id=s.session_id, player_count=s.client_count(), game_started=s.game_started())
                for s in sessions
            ]
        return SessionListResponse(sessions=items)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._sessions)

    def reap_inactive(self, threshold: float, now: Optional[float] = None) -> list[tuple[Session, list[Connection]]]:
        """Remove sessions idle for longer than ``threshold`` seconds.

        Returns each removed session with the connections detached from it; the
        caller closes them once no lock is held.
        """
        now = self._clock() if now is None else now
        reaped: list[tuple[Session, list[Connection]]] = []
        with self._lock.write():
            for sid, session in list(self._sessions.items()):
                if session.idle_for(now) <= threshold:
                    continue
                # wait out any action in flight, then re-check under both locks
                with session.state.lock.write():
                    with session.clients_lock.write():
                        idle = now - session.last_activity
                        if idle <= threshold:
                            continue
                        conns = list(session.clients.values())
                        session.clients.clear()
                del self._sessions[sid]
                reaped.append((session, conns))
                _dbg(f"Session {sid} inactive for {idle:.0f}s, cleaning up")
        for session, conns in reaped:
            audit_write(session.session_id, {"type": "reaped", "connections": len(conns)})
            audit_close(session.session_id)
        return reaped
