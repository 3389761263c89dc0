import json
import os
import random
import sys
from typing import Optional

from pydantic import ValidationError

from server.schemas import (
    ACTION_MESSAGES,
    ClientMessage,
    CreateGameMessage,
    JoinGameMessage,
    ServerMessage,
    StartGameMessage,
)
from server.services.session import (
    Connection,
    Session,
    SessionFull,
    SessionNotFound,
    SessionStore,
)

# Debug flag: enable when running tests or when env var BATTLE_LINE_DEBUG is set
DEBUG = bool(os.getenv('BATTLE_LINE_DEBUG')) or ('unittest' in sys.modules) or ('PYTEST_CURRENT_TEST' in os.environ)


def _dbg(*args, **kwargs):
    if DEBUG:
        print(*args, **kwargs)


BINDING_ACTIONS = ("createGame", "joinGame")


class PlayerConnection:
    """A socket plus the (session, seat) it is bound to; the binding never changes once set."""

    def __init__(self, conn: Connection):
        self.conn = conn
        self.session: Optional[Session] = None
        self.player_id: Optional[str] = None

    @property
    def bound(self) -> bool:
        return self.session is not None

    @property
    def session_id(self) -> str:
        return self.session.session_id if self.session else ""


async def close_quietly(conn: Connection, where: str = "") -> None:
    try:
        await conn.close()
    except Exception as e:
        _dbg(f"Error closing client {where}: {e}")


def encode(msg: ServerMessage) -> str:
    return json.dumps(msg.to_wire(), ensure_ascii=False)


class Multiplexer:
    def __init__(self, store: SessionStore, rng: random.Random | None = None) -> None:
        self.store = store
        self.rng = rng

    async def handle_message(self, client: PlayerConnection, raw: str) -> None:
        """Route one inbound frame: bind unbound sockets, otherwise play the action."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            _dbg(f"malformed frame dropped: {e}")
            return
        if not isinstance(data, dict):
            _dbg(f"non-object frame dropped: {raw!r}")
            return

        action = data.get("action")
        if not client.bound:
            if action not in BINDING_ACTIONS:
                _dbg(f"unbound client sent {action!r}, dropped")
                return
        elif action in BINDING_ACTIONS:
            await self.send_error(client, "Already in a game session")
            return

        model = ACTION_MESSAGES.get(action) if isinstance(action, str) else None
        if model is None:
            await self.send_error(client, f"Unknown action: {action}")
            return
        try:
            msg = model.model_validate(data)
        except ValidationError as e:
            _dbg(f"Error parsing {action}: {e}")
            await self.send_error(client, f"Invalid {action} message")
            return

        if isinstance(msg, CreateGameMessage):
            await self._create(client, msg)
        elif isinstance(msg, JoinGameMessage):
            await self._join(client, msg)
        else:
            await self._play(client, msg)

    async def _create(self, client: PlayerConnection, msg: CreateGameMessage) -> None:
        try:
            session = self.store.create(msg.number_of_players)
        except ValueError as e:
            await self.send_error(client, str(e))
            return
        player_id = self.store.join(session.session_id, msg.player_name)
        await self._bind(client, session, player_id)

    async def _join(self, client: PlayerConnection, msg: JoinGameMessage) -> None:
        try:
            player_id = self.store.join(msg.session_id, msg.player_name)
            session = self.store.get(msg.session_id)
        except SessionNotFound:
            await self.send_error(client, "Game session not found")
            return
        except SessionFull:
            await self.send_error(client, "Game is full")
            return
        await self._bind(client, session, player_id)

    async def _bind(self, client: PlayerConnection, session: Session, player_id: str) -> None:
        client.session = session
        client.player_id = player_id
        self.store.touch(session)
        session.register(player_id, client.conn)
        ack = ServerMessage(message_type="gameStarted", session_id=session.session_id, player_id=player_id)
        if await self._deliver(session, player_id, client.conn, encode(ack)):
            await self.broadcast(session)

    async def _play(self, client: PlayerConnection, msg: ClientMessage) -> None:
        session = client.session
        self.store.touch(session)
        # a socket dropped after a failed write gets its seat back on its next frame
        session.register(client.player_id, client.conn)

        if isinstance(msg, StartGameMessage) and msg.num_players not in (None, session.capacity):
            _dbg(f"startGame claims {msg.num_players} players, session {session.session_id} seats {session.capacity}")

        msgs = session.apply_action(client.player_id, msg, self.rng)
        if msgs:
            await self.send_error(client, "; ".join(msgs))
            return
        await self.broadcast(session, "gameStarted" if isinstance(msg, StartGameMessage) else "")

    async def broadcast(self, session: Session, message_type: str = "") -> None:
        """Send every seated connection its own view of the session."""
        conns = session.connections()
        views = session.snapshots(conns.keys(), message_type)
        for player_id, conn in conns.items():
            await self._deliver(session, player_id, conn, encode(views[player_id]))

    async def _deliver(self, session: Session, player_id: str, conn: Connection, data: str) -> bool:
        try:
            await conn.send_text(data)
            return True
        except Exception as e:
            # a dead socket only costs its own seat
            _dbg(f"write to player {player_id} in session {session.session_id} failed: {e}")
            session.deregister(player_id, conn)
            await close_quietly(conn, f"in session {session.session_id}")
            return False

    async def send_error(self, client: PlayerConnection, error: str) -> None:
        msg = ServerMessage(message_type="error", error=error, session_id=client.session_id)
        if client.bound:
            await self._deliver(client.session, client.player_id, client.conn, encode(msg))
            return
        try:
            await client.conn.send_text(encode(msg))
        except Exception as e:
            _dbg(f"write to unbound client failed: {e}")

    def disconnect(self, client: PlayerConnection) -> None:
        if client.bound:
            if client.session.deregister(client.player_id, client.conn):
                _dbg(f"player {client.player_id} left session {client.session_id}")
