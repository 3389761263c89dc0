from dataclasses import dataclass, field
from typing import Literal, Optional

from server.schemas import (
    GameStatePayload,
    Player,
    SalvoCard,
    ServerMessage,
    ShipCard,
)
from server.utils.rwlock import RWLock

MatchPhase = Literal["lobby", "ready", "in_progress", "finished"]


@dataclass
class MatchState:
    """Authoritative state of one match.

    Guarded by ``lock``: rules-engine transitions hold it exclusively, snapshot
    builders hold it shared. Nothing here takes the lock itself.
    """
    capacity: int
    players: list[Player] = field(default_factory=list)
    ship_deck: list[ShipCard] = field(default_factory=list)
    play_deck: list[SalvoCard] = field(default_factory=list)
    discard_pile: list[SalvoCard] = field(default_factory=list)
    current_player_id: str = ""
    game_started: bool = False
    winner_id: Optional[str] = None
    lock: RWLock = field(default_factory=RWLock, repr=False)

    @property
    def phase(self) -> MatchPhase:
        if self.winner_id is not None:
            return "finished"
        if self.game_started:
            return "in_progress"
        if len(self.players) >= self.capacity:
            return "ready"
        return "lobby"

    def player(self, player_id: str | None) -> Optional[Player]:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def add_player(self, name: str) -> Player:
        # ids are dense and 1-based; players never leave, so count+1 is never reused
        p = Player(id=str(len(self.players) + 1), name=name)
        self.players.append(p)
        return p

    def next_player_id(self, player_id: str) -> str:
        """Seat after ``player_id`` in join order (the other player in a 2-player match)."""
        ids = [p.id for p in self.players]
        i = ids.index(player_id)
        return ids[(i + 1) % len(ids)]

    def opponents(self, player_id: str) -> list[Player]:
        return [p for p in self.players if p.id != player_id]

    def ship_total(self) -> int:
        return len(self.ship_deck) + sum(
            len(p.ships) + len(p.played_ships) + len(p.deep_six_pile) for p in self.players
        )

    def salvo_total(self) -> int:
        return len(self.play_deck) + len(self.discard_pile) + sum(
            len(p.hand) + len(p.discarded_salvos) for p in self.players
        )

    # --- projection ---

    def view_for(self, viewer_id: str | None) -> GameStatePayload:
        """Per-recipient view: public zones for everyone, hand and ships only for the viewer.

        Lists are copied so the payload can be serialized after the lock is released.
        """
        players = []
        for p in self.players:
            own = p.id == viewer_id
            players.append(Player(
                id=p.id,
                name=p.name,
                ships=list(p.ships) if own else [],
                hand=list(p.hand) if own else [],
                played_ships=list(p.played_ships),
                discarded_salvos=list(p.discarded_salvos),
                deep_six_pile=list(p.deep_six_pile),
            ))
        return GameStatePayload(
            players=players,
            current_player_id=self.current_player_id,
            game_started=self.game_started,
            winner_id=self.winner_id,
        )

    def build_message(self, session_id: str, viewer_id: str | None, message_type: str = "") -> ServerMessage:
        return ServerMessage(
            message_type=message_type,
            game_state=self.view_for(viewer_id),
            ship_deck_count=len(self.ship_deck),
            play_deck_count=len(self.play_deck),
            discard_count=len(self.discard_pile),
            session_id=session_id,
            player_id=viewer_id,
        )
