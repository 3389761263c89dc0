import random
import unittest

from server.schemas import SalvoCard, ShipCard
from server.services.cards import SALVO_DECK_SIZE, SHIP_DECK_SIZE, build_salvo_deck, build_ship_deck
from server.services.rules import discard_salvo, draw_salvo, draw_ship, fire_salvo, start_match
from server.services.state import MatchState


LIGHT = ShipCard(gun_size=11, hit_points=3, name="Light Cruiser")
BATTLECRUISER = ShipCard(gun_size=14, hit_points=5, name="Battlecruiser")
BATTLESHIP = ShipCard(gun_size=15, hit_points=6, name="Battleship")


def started(capacity: int = 2, seed: int = 1) -> MatchState:
    state = MatchState(capacity=capacity)
    for i in range(capacity):
        state.add_player(f"P{i + 1}")
    assert start_match(state, random.Random(seed)) == []
    return state


class TestStartMatch(unittest.TestCase):
    def test_waits_for_all_players(self):
        state = MatchState(capacity=2)
        state.add_player("alone")
        self.assertEqual(start_match(state), ["Waiting for all players to join"])
        self.assertFalse(state.game_started)
        self.assertEqual(state.ship_deck, [])
        self.assertEqual(state.phase, "lobby")

    def test_deals_opening_hands(self):
        state = started()
        self.assertTrue(state.game_started)
        self.assertEqual(state.phase, "in_progress")
        self.assertEqual(state.current_player_id, "1")
        self.assertEqual([p.name for p in state.players], ["P1", "P2"])
        for p in state.players:
            self.assertEqual(len(p.hand), 5)
            self.assertEqual(len(p.played_ships), 5)
            self.assertEqual(p.ships, [])
            self.assertEqual(p.deep_six_pile, [])
        self.assertEqual(len(state.ship_deck), SHIP_DECK_SIZE - 10)
        self.assertEqual(len(state.play_deck), 98)
        self.assertEqual(state.discard_pile, [])

    def test_deals_round_robin_from_the_end(self):
        r = random.Random(9)
        ships = build_ship_deck(r)
        salvos = build_salvo_deck(r)
        state = started(seed=9)
        p1, p2 = state.players
        self.assertEqual(p1.played_ships, [ships[-1], ships[-3], ships[-5], ships[-7], ships[-9]])
        self.assertEqual(p2.played_ships, [ships[-2], ships[-4], ships[-6], ships[-8], ships[-10]])
        self.assertEqual(p1.hand, [salvos[-1], salvos[-3], salvos[-5], salvos[-7], salvos[-9]])
        self.assertEqual(state.ship_deck, ships[:-10])
        self.assertEqual(state.play_deck, salvos[:-10])

    def test_cannot_start_twice(self):
        state = started()
        hand = list(state.players[0].hand)
        self.assertEqual(start_match(state), ["Game already started"])
        self.assertEqual(state.players[0].hand, hand)


class TestDraws(unittest.TestCase):
    def setUp(self):
        self.state = started()
        self.p1, self.p2 = self.state.players

    def test_draw_salvo_refills_from_discard_in_order(self):
        c1 = SalvoCard(gun_size=11, damage=1)
        c2 = SalvoCard(gun_size=14, damage=2)
        c3 = SalvoCard(gun_size=18, damage=4)
        self.state.play_deck = []
        self.state.discard_pile = [c1, c2, c3]
        self.assertEqual(draw_salvo(self.state, "1"), [])
        self.assertEqual(self.p1.hand[-1], c3)
        self.assertEqual(self.state.play_deck, [c1, c2])
        self.assertEqual(self.state.discard_pile, [])

    def test_draw_salvo_with_nothing_left_is_a_noop(self):
        self.state.play_deck = []
        self.state.discard_pile = []
        hand = list(self.p1.hand)
        self.assertEqual(draw_salvo(self.state, "1"), [])
        self.assertEqual(self.p1.hand, hand)

    def test_draw_salvo_takes_last_card(self):
        top = self.state.play_deck[-1]
        draw_salvo(self.state, "1")
        self.assertEqual(self.p1.hand[-1], top)
        self.assertEqual(len(self.state.play_deck), 97)

    def test_draw_out_of_turn_is_rejected(self):
        self.assertEqual(draw_salvo(self.state, "2"), ["Not your turn"])
        self.assertEqual(draw_ship(self.state, "2"), ["Not your turn"])
        self.assertEqual(len(self.p2.hand), 5)
        self.assertEqual(self.p2.ships, [])

    def test_draw_ship_goes_to_holding_area(self):
        top = self.state.ship_deck[-1]
        self.assertEqual(draw_ship(self.state, "1"), [])
        self.assertEqual(self.p1.ships, [top])
        self.assertEqual(len(self.p1.played_ships), 5)
        self.assertEqual(len(self.state.ship_deck), SHIP_DECK_SIZE - 11)
        self.assertEqual(self.state.current_player_id, "1")

    def test_draw_ship_from_empty_deck(self):
        self.state.ship_deck = []
        self.assertEqual(draw_ship(self.state, "1"), [])
        self.assertEqual(self.p1.ships, [])

    def test_draws_need_a_started_match(self):
        state = MatchState(capacity=2)
        state.add_player("a")
        state.add_player("b")
        self.assertEqual(draw_salvo(state, "1"), ["Game not started"])


class TestFireSalvo(unittest.TestCase):
    def setUp(self):
        self.state = started()
        self.p1, self.p2 = self.state.players
        self.p1.played_ships = [BATTLECRUISER]
        self.p1.hand = [SalvoCard(gun_size=14, damage=3), SalvoCard(gun_size=11, damage=1)]
        self.p2.played_ships = [LIGHT, BATTLESHIP]
        self.state.discard_pile = []

    def test_sinking_moves_ship_to_attackers_deep_six(self):
        salvo = SalvoCard(gun_size=14, damage=3)
        self.assertEqual(fire_salvo(self.state, "1", salvo, LIGHT), [])
        self.assertEqual(self.p2.played_ships, [BATTLESHIP])
        self.assertEqual(len(self.p1.deep_six_pile), 1)
        sunk = self.p1.deep_six_pile[0]
        self.assertEqual((sunk.name, sunk.hit_points), ("Light Cruiser", 0))
        self.assertEqual(self.p1.hand, [SalvoCard(gun_size=11, damage=1)])
        self.assertEqual(self.state.discard_pile, [salvo])
        self.assertEqual(self.state.current_player_id, "2")

    def test_overkill_sinks_with_zero_hit_points(self):
        self.p1.played_ships = [ShipCard(gun_size=18, hit_points=9, name="Super Dreadnought")]
        salvo = SalvoCard(gun_size=18, damage=4)
        self.p1.hand = [salvo]
        self.assertEqual(fire_salvo(self.state, "1", salvo, LIGHT), [])
        self.assertEqual(self.p2.played_ships, [BATTLESHIP])
        (sunk,) = self.p1.deep_six_pile
        self.assertEqual(sunk.name, "Light Cruiser")
        self.assertEqual(sunk.hit_points, 0)
        self.assertEqual(sunk.to_wire()["hitPoints"], 0)

    def test_damage_is_written_back_in_place(self):
        salvo = SalvoCard(gun_size=14, damage=3)
        self.assertEqual(fire_salvo(self.state, "1", salvo, BATTLESHIP), [])
        self.assertEqual(len(self.p2.played_ships), 2)
        self.assertEqual(self.p2.played_ships[0], LIGHT)
        self.assertEqual(self.p2.played_ships[1].hit_points, 3)
        self.assertEqual(self.p2.played_ships[1].name, "Battleship")
        self.assertEqual(self.p1.deep_six_pile, [])
        self.assertEqual(self.state.current_player_id, "2")

    def test_needs_a_ship_of_that_caliber(self):
        msgs = fire_salvo(self.state, "1", SalvoCard(gun_size=11, damage=1), BATTLESHIP)
        self.assertEqual(msgs, ["No ship can fire that salvo"])
        self.assertEqual(len(self.p1.hand), 2)
        self.assertEqual(self.state.discard_pile, [])
        self.assertEqual(self.state.current_player_id, "1")

    def test_salvo_must_be_in_hand(self):
        msgs = fire_salvo(self.state, "1", SalvoCard(gun_size=14, damage=2), BATTLESHIP)
        self.assertEqual(msgs, ["Salvo not in hand"])
        self.assertEqual(self.p2.played_ships, [LIGHT, BATTLESHIP])
        self.assertEqual(self.state.current_player_id, "1")

    def test_out_of_turn(self):
        self.p2.hand = [SalvoCard(gun_size=11, damage=2)]
        msgs = fire_salvo(self.state, "2", SalvoCard(gun_size=11, damage=2), BATTLECRUISER)
        self.assertEqual(msgs, ["Not your turn"])
        self.assertEqual(self.p1.played_ships, [BATTLECRUISER])

    def test_missing_target_spends_the_salvo(self):
        ghost = ShipCard(gun_size=18, hit_points=9)
        self.assertEqual(fire_salvo(self.state, "1", SalvoCard(gun_size=14, damage=3), ghost), [])
        self.assertEqual(self.p2.played_ships, [LIGHT, BATTLESHIP])
        self.assertEqual(len(self.state.discard_pile), 1)
        self.assertEqual(self.state.current_player_id, "2")

    def test_sinking_the_last_ship_ends_the_match(self):
        self.p2.played_ships = [LIGHT]
        self.assertEqual(fire_salvo(self.state, "1", SalvoCard(gun_size=14, damage=3), LIGHT), [])
        self.assertFalse(self.state.game_started)
        self.assertEqual(self.state.winner_id, "1")
        self.assertEqual(self.state.current_player_id, "1")
        self.assertEqual(self.state.phase, "finished")
        self.assertEqual(draw_salvo(self.state, "1"), ["Game not started"])
        self.assertEqual(start_match(self.state), ["Game is over"])

    def test_battle_line_depletion_by_successive_fire(self):
        self.p1.hand = [SalvoCard(gun_size=14, damage=3) for _ in range(4)]
        self.p2.hand = []
        while self.p2.played_ships:
            target = self.p2.played_ships[0]
            self.assertEqual(fire_salvo(self.state, "1", SalvoCard(gun_size=14, damage=3), target), [])
            if self.state.game_started:
                self.assertEqual(self.state.current_player_id, "2")
                self.assertEqual(discard_salvo(self.state, "2", SalvoCard(gun_size=11, damage=1)), ["Salvo not in hand"])
                self.state.current_player_id = "1"
        self.assertFalse(self.state.game_started)
        self.assertEqual(self.state.current_player_id, "1")
        self.assertEqual(len(self.p1.deep_six_pile), 2)


class TestDiscardSalvo(unittest.TestCase):
    def setUp(self):
        self.state = started()
        self.p1 = self.state.players[0]

    def test_discard_moves_card_and_passes_turn(self):
        card = self.p1.hand[0]
        self.assertEqual(discard_salvo(self.state, "1", card), [])
        self.assertEqual(self.state.discard_pile, [card])
        self.assertEqual(len(self.p1.hand), 4)
        self.assertEqual(self.state.current_player_id, "2")

    def test_discard_requires_card_in_hand(self):
        self.p1.hand = [SalvoCard(gun_size=11, damage=1)]
        self.assertEqual(discard_salvo(self.state, "1", SalvoCard(gun_size=18, damage=4)), ["Salvo not in hand"])
        self.assertEqual(self.state.discard_pile, [])
        self.assertEqual(self.state.current_player_id, "1")

    def test_discard_out_of_turn(self):
        card = self.state.players[1].hand[0]
        self.assertEqual(discard_salvo(self.state, "2", card), ["Not your turn"])


class TestThreePlayers(unittest.TestCase):
    def setUp(self):
        self.state = started(capacity=3)
        self.p1, self.p2, self.p3 = self.state.players
        self.p1.played_ships = [BATTLECRUISER]
        self.p1.hand = [SalvoCard(gun_size=14, damage=3)]
        self.p3.played_ships = [LIGHT, BATTLESHIP]

    def test_target_player_is_required(self):
        msgs = fire_salvo(self.state, "1", SalvoCard(gun_size=14, damage=3), LIGHT)
        self.assertEqual(msgs, ["Target player required"])
        self.assertEqual(len(self.p1.hand), 1)

    def test_cannot_target_self(self):
        msgs = fire_salvo(self.state, "1", SalvoCard(gun_size=14, damage=3), BATTLECRUISER, target_player_id="1")
        self.assertEqual(msgs, ["Invalid target player"])

    def test_named_target_and_round_robin_turns(self):
        msgs = fire_salvo(self.state, "1", SalvoCard(gun_size=14, damage=3), LIGHT, target_player_id="3")
        self.assertEqual(msgs, [])
        self.assertEqual(self.p3.played_ships, [BATTLESHIP])
        self.assertEqual(self.state.current_player_id, "2")
        discard_salvo(self.state, "2", self.p2.hand[0])
        self.assertEqual(self.state.current_player_id, "3")
        discard_salvo(self.state, "3", self.p3.hand[0])
        self.assertEqual(self.state.current_player_id, "1")


class TestInvariants(unittest.TestCase):
    def test_conservation_and_turn_alternation_over_random_play(self):
        rnd = random.Random(2024)
        for seed in range(5):
            state = started(seed=seed)
            for _ in range(400):
                if not state.game_started:
                    break
                current = state.current_player_id
                actor = current if rnd.random() < 0.85 else state.next_player_id(current)
                me = state.player(actor)
                other = state.opponents(actor)[0]
                kind = rnd.choice(["drawSalvo", "drawShip", "fire", "fire", "discard"])
                if kind == "drawSalvo":
                    msgs = draw_salvo(state, actor)
                elif kind == "drawShip":
                    msgs = draw_ship(state, actor)
                elif kind == "fire":
                    salvo = rnd.choice(me.hand) if me.hand else SalvoCard(gun_size=11, damage=1)
                    target = rnd.choice(other.played_ships)
                    msgs = fire_salvo(state, actor, salvo, target)
                else:
                    salvo = rnd.choice(me.hand) if me.hand else SalvoCard(gun_size=11, damage=1)
                    msgs = discard_salvo(state, actor, salvo)

                self.assertEqual(state.ship_total(), SHIP_DECK_SIZE)
                self.assertEqual(state.salvo_total(), SALVO_DECK_SIZE)
                if msgs:
                    self.assertEqual(state.current_player_id, current)
                elif kind in ("fire", "discard") and state.game_started:
                    self.assertNotEqual(state.current_player_id, current)
                    self.assertIn(state.current_player_id, [p.id for p in state.players])


if __name__ == '__main__':
    unittest.main()
