import os
import sys

from fastapi import APIRouter, WebSocket
from fastapi.websockets import WebSocketState

from server.services.multiplexer import Multiplexer, PlayerConnection

# Debug flag: enable when running tests or when env var BATTLE_LINE_DEBUG is set
DEBUG = bool(os.getenv('BATTLE_LINE_DEBUG')) or ('unittest' in sys.modules) or ('PYTEST_CURRENT_TEST' in os.environ)


def _dbg(*args, **kwargs):
    if DEBUG:
        print(*args, **kwargs)


router = APIRouter()


@router.websocket("/ws")
async def game_socket(websocket: WebSocket) -> None:
    """One task per connection: read frames serially and hand each to the multiplexer."""
    await websocket.accept()
    mux: Multiplexer = websocket.app.state.multiplexer
    client = PlayerConnection(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                _dbg(f"client disconnected ({message.get('code')}) from session {client.session_id or '-'}")
                break
            raw = message.get("text")
            if raw is None:
                _dbg("non-text frame dropped")
                continue
            await mux.handle_message(client, raw)
            # a failed write to this socket closes it from our side
            if websocket.application_state == WebSocketState.DISCONNECTED:
                _dbg(f"socket closed by server in session {client.session_id or '-'}")
                break
    finally:
        mux.disconnect(client)
