from __future__ import annotations

import hashlib
from collections.abc import Callable, Sequence

from geocrawler.sim.board import Cell

COIN_COUNT_TOPIC = "coinCount"
_MANTISSA_BITS = 53

LuckFn = Callable[[Sequence[object]], float]


def _seed_text(seed_components: Sequence[object]) -> str:
    # "3,-2,coinCount" style: components joined with commas, no spaces.
    return ",".join(str(component) for component in seed_components)


def luck(seed_components: Sequence[object]) -> float:
    """Deterministic value in [0, 1) derived from the seed components."""
    digest = hashlib.sha256(_seed_text(seed_components).encode("utf-8")).digest()
    value = int.from_bytes(digest[:8], byteorder="big", signed=False) >> (64 - _MANTISSA_BITS)
    return value / float(1 << _MANTISSA_BITS)


def cache_spawns(cell: Cell, spawn_probability: float, luck_fn: LuckFn = luck) -> bool:
    return luck_fn((cell.i, cell.j)) < spawn_probability


def initial_coin_count(cell: Cell, max_coins_exclusive: int, luck_fn: LuckFn = luck) -> int:
    if max_coins_exclusive <= 0:
        raise ValueError("max_coins_exclusive must be > 0")
    return int(luck_fn((cell.i, cell.j, COIN_COUNT_TOPIC)) * max_coins_exclusive) + 1
