"""Rules engine.

Every function here mutates a MatchState and must be called with the state's
lock held exclusively. Each one validates everything first and only then
mutates, so a rejected action leaves the state exactly as it was. The return
value is a list of reasons; an empty list means the action was applied.
"""
import random

from server.schemas import (
    OPENING_SALVOS,
    OPENING_SHIPS,
    ClientMessage,
    DiscardSalvoMessage,
    DrawSalvoMessage,
    DrawShipMessage,
    FireSalvoMessage,
    Player,
    SalvoCard,
    ShipCard,
    StartGameMessage,
)
from server.services.cards import build_salvo_deck, build_ship_deck
from server.services.state import MatchState


def start_match(state: MatchState, rng: random.Random | None = None) -> list[str]:
    if state.winner_id is not None:
        return ["Game is over"]
    if state.game_started:
        return ["Game already started"]
    if len(state.players) < state.capacity:
        return ["Waiting for all players to join"]

    ship_deck = build_ship_deck(rng)
    play_deck = build_salvo_deck(rng)
    for p in state.players:
        p.reset_zones()

    # round-robin: one card per player per round, drawn from the end of the deck
    for _ in range(OPENING_SHIPS):
        for p in state.players:
            if ship_deck:
                p.played_ships.append(ship_deck.pop())
    for _ in range(OPENING_SALVOS):
        for p in state.players:
            if play_deck:
                p.hand.append(play_deck.pop())

    state.ship_deck = ship_deck
    state.play_deck = play_deck
    state.discard_pile = []
    state.current_player_id = state.players[0].id
    state.game_started = True
    return []


def _check_turn(state: MatchState, player_id: str) -> tuple[Player | None, list[str]]:
    if not state.game_started:
        return None, ["Game not started"]
    player = state.player(player_id)
    if player is None:
        return None, ["Unknown player"]
    if state.current_player_id != player_id:
        return None, ["Not your turn"]
    return player, []


def draw_salvo(state: MatchState, player_id: str) -> list[str]:
    player, msgs = _check_turn(state, player_id)
    if msgs:
        return msgs
    if not state.play_deck:
        if not state.discard_pile:
            return []
        # refill keeps the discard order; no reshuffle
        state.play_deck = state.discard_pile
        state.discard_pile = []
    player.hand.append(state.play_deck.pop())
    return []


def draw_ship(state: MatchState, player_id: str) -> list[str]:
    player, msgs = _check_turn(state, player_id)
    if msgs:
        return msgs
    if state.ship_deck:
        player.ships.append(state.ship_deck.pop())
    return []


def _defender(state: MatchState, attacker: Player, target_player_id: str | None) -> tuple[Player | None, list[str]]:
    opponents = state.opponents(attacker.id)
    if target_player_id is None:
        if len(opponents) == 1:
            return opponents[0], []
        return None, ["Target player required"]
    for p in opponents:
        if p.id == target_player_id:
            return p, []
    return None, ["Invalid target player"]


def fire_salvo(
    state: MatchState,
    player_id: str,
    salvo: SalvoCard,
    target: ShipCard,
    target_player_id: str | None = None,
) -> list[str]:
    attacker, msgs = _check_turn(state, player_id)
    if msgs:
        return msgs
    defender, msgs = _defender(state, attacker, target_player_id)
    if msgs:
        return msgs
    if not any(ship.can_fire(salvo) for ship in attacker.played_ships):
        return ["No ship can fire that salvo"]
    if salvo not in attacker.hand:
        return ["Salvo not in hand"]

    attacker.hand.remove(salvo)
    state.discard_pile.append(salvo)

    for i, ship in enumerate(defender.played_ships):
        if ship.matches(target):
            # hit points never go below zero, even on a sunk card
            hit = ship.model_copy(update={"hit_points": max(ship.hit_points - salvo.damage, 0)})
            if hit.hit_points == 0:
                del defender.played_ships[i]
                attacker.deep_six_pile.append(hit)
            else:
                defender.played_ships[i] = hit
            break
    # no matching target: the salvo is spent as a miss

    if not defender.played_ships:
        state.game_started = False
        state.winner_id = attacker.id
        return []

    state.current_player_id = state.next_player_id(attacker.id)
    return []


def discard_salvo(state: MatchState, player_id: str, salvo: SalvoCard) -> list[str]:
    player, msgs = _check_turn(state, player_id)
    if msgs:
        return msgs
    if salvo not in player.hand:
        return ["Salvo not in hand"]
    player.hand.remove(salvo)
    state.discard_pile.append(salvo)
    state.current_player_id = state.next_player_id(player_id)
    return []


def apply_action(state: MatchState, player_id: str, msg: ClientMessage, rng: random.Random | None = None) -> list[str]:
    """Dispatch one decoded in-game message to its transition."""
    if isinstance(msg, StartGameMessage):
        return start_match(state, rng)
    if isinstance(msg, DrawSalvoMessage):
        return draw_salvo(state, player_id)
    if isinstance(msg, DrawShipMessage):
        return draw_ship(state, player_id)
    if isinstance(msg, FireSalvoMessage):
        return fire_salvo(state, player_id, msg.salvo, msg.target, msg.target_player_id)
    if isinstance(msg, DiscardSalvoMessage):
        return discard_salvo(state, player_id, msg.salvo)
    return [f"Unknown action: {msg.action}"]
