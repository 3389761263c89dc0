from typing import List, Optional, Literal
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

LISTEN_PORT = 8080

INACTIVITY_TIMEOUT = 5 * 60  # seconds
REAP_INTERVAL = 60  # seconds

OPENING_SHIPS = 5
OPENING_SALVOS = 5

DEFAULT_PLAYERS = 2
MIN_PLAYERS = 2
MAX_PLAYERS = 6

ShipType = Literal["carrier", "normal"]
MessageType = Literal["", "gameStarted", "error"]


class WireModel(BaseModel, alias_generator=to_camel, populate_by_name=True):
    """Base for everything that crosses the socket: snake_case in Python, camelCase on the wire."""

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# === Cards ===

class ShipCard(WireModel, frozen=True):
    gun_size: float
    hit_points: int
    name: str = ""
    type: ShipType = "normal"

    def can_fire(self, salvo: 'SalvoCard') -> bool:
        return self.gun_size == salvo.gun_size

    def matches(self, target: 'ShipCard') -> bool:
        """Targets are identified by caliber and remaining hit points only."""
        return self.gun_size == target.gun_size and self.hit_points == target.hit_points


class SalvoCard(WireModel, frozen=True):
    gun_size: float
    damage: int


# === Match state ===

class Player(WireModel):
    id: str
    name: str = ""
    ships: List[ShipCard] = []
    hand: List[SalvoCard] = []
    played_ships: List[ShipCard] = []
    discarded_salvos: List[SalvoCard] = []
    deep_six_pile: List[ShipCard] = []

    def reset_zones(self) -> None:
        self.ships = []
        self.hand = []
        self.played_ships = []
        self.discarded_salvos = []
        self.deep_six_pile = []


class GameStatePayload(WireModel):
    players: List[Player] = []
    current_player_id: str = ""
    game_started: bool = False
    winner_id: Optional[str] = None


# === Inbound messages ===

class ClientMessage(WireModel, extra="allow"):
    action: str
    session_id: Optional[str] = None
    player_id: Optional[str] = None


class CreateGameMessage(ClientMessage):
    number_of_players: int = DEFAULT_PLAYERS
    player_name: str = ""


class JoinGameMessage(ClientMessage):
    session_id: str
    player_name: str = ""


class StartGameMessage(ClientMessage):
    num_players: Optional[int] = None


class DrawSalvoMessage(ClientMessage):
    pass


class DrawShipMessage(ClientMessage):
    pass


class FireSalvoMessage(ClientMessage):
    salvo: SalvoCard
    target: ShipCard
    target_player_id: Optional[str] = None


class DiscardSalvoMessage(ClientMessage):
    salvo: SalvoCard


ACTION_MESSAGES: dict[str, type[ClientMessage]] = {
    "createGame": CreateGameMessage,
    "joinGame": JoinGameMessage,
    "startGame": StartGameMessage,
    "drawSalvo": DrawSalvoMessage,
    "drawShip": DrawShipMessage,
    "fireSalvo": FireSalvoMessage,
    "discardSalvo": DiscardSalvoMessage,
}


# === Outbound messages ===

class ServerMessage(WireModel):
    message_type: MessageType = ""
    game_state: Optional[GameStatePayload] = None
    ship_deck_count: int = 0
    play_deck_count: int = 0
    discard_count: int = 0
    session_id: str = ""
    player_id: Optional[str] = None
    error: Optional[str] = None


class SessionInfo(WireModel):
    id: str
    player_count: int
    game_started: bool


class SessionListResponse(WireModel):
    sessions: List[SessionInfo] = Field(default_factory=list)
