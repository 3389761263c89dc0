import random
from typing import TypeVar

from server.schemas import ShipCard, SalvoCard

T = TypeVar("T")

CARRIER_COUNT = 2
CARRIER = ShipCard(gun_size=14, hit_points=8, name="Aircraft Carrier", type="carrier")

# (count, gun size, hit points, name)
SHIP_CLASSES: list[tuple[int, float, int, str]] = [
    (10, 11, 3, "Light Cruiser"),
    (10, 12.6, 4, "Heavy Cruiser"),
    (12, 14, 5, "Battlecruiser"),
    (8, 15, 6, "Battleship"),
    (8, 16, 7, "Super Battleship"),
    (6, 18, 9, "Super Dreadnought"),
]

# (count, gun size, min damage, max damage) - damage range is inclusive
SALVO_BANDS: list[tuple[int, float, int, int]] = [
    (24, 11, 1, 2),
    (20, 12.6, 1, 2),
    (24, 14, 1, 3),
    (16, 15, 2, 4),
    (16, 16, 2, 4),
    (8, 18, 3, 4),
]

SHIP_DECK_SIZE = CARRIER_COUNT + sum(c for c, _, _, _ in SHIP_CLASSES)
SALVO_DECK_SIZE = sum(c for c, _, _, _ in SALVO_BANDS)


def shuffle(deck: list[T], rng: random.Random | None = None) -> list[T]:
    """Return a uniformly shuffled copy of deck; the argument is left untouched."""
    r = rng or random
    shuffled = list(deck)
    r.shuffle(shuffled)
    return shuffled


def build_ship_deck(rng: random.Random | None = None) -> list[ShipCard]:
    ships = [CARRIER] * CARRIER_COUNT
    for count, gun_size, hit_points, name in SHIP_CLASSES:
        ships.extend(
            ShipCard(gun_size=gun_size, hit_points=hit_points, name=name, type="normal")
            for _ in range(count)
        )
    return shuffle(ships, rng)


def build_salvo_deck(rng: random.Random | None = None) -> list[SalvoCard]:
    r = rng or random
    salvos: list[SalvoCard] = []
    for count, gun_size, min_damage, max_damage in SALVO_BANDS:
        for _ in range(count):
            salvos.append(SalvoCard(gun_size=gun_size, damage=r.randint(min_damage, max_damage)))
    return shuffle(salvos, rng)
