from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from geocrawler.sim.board import Board, Cell

INVENTORY_HOLDER = "@player"
APPLIED_OUTCOME = "applied"


@dataclass(frozen=True)
class Geocoin:
    """Collectible token; identity is (origin_key, serial).

    Whether a coin is collected is a property of the container holding it,
    so it is answered by ``CoinLedger.is_collected`` rather than stored here.
    """

    origin_key: str
    latitude: float
    longitude: float
    serial: int

    def __post_init__(self) -> None:
        Cell.from_key(self.origin_key)
        if isinstance(self.serial, bool) or not isinstance(self.serial, int) or self.serial < 0:
            raise ValueError("coin serial must be a non-negative integer")

    def label(self) -> str:
        return f"{self.origin_key}#{self.serial}"

    def describe(self) -> str:
        return f"{self.latitude:.5f}:{self.longitude:.5f}#{self.serial}"

    def to_dict(self, *, collected: bool) -> dict[str, Any]:
        return {
            "cellKey": self.origin_key,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "serial": self.serial,
            "collected": collected,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Geocoin":
        return cls(
            origin_key=str(data["cellKey"]),
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            serial=int(data["serial"]),
        )


@dataclass(frozen=True)
class CacheMemento:
    cell_key: str
    coins: tuple[Geocoin, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "cellKey": self.cell_key,
            "coins": [coin.to_dict(collected=False) for coin in self.coins],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheMemento":
        cell_key = data["cellKey"]
        Cell.from_key(cell_key)
        return cls(cell_key=cell_key, coins=tuple(Geocoin.from_dict(row) for row in data["coins"]))


@dataclass(frozen=True)
class ActionOutcome:
    action: str
    outcome: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def applied(self) -> bool:
        return self.outcome == APPLIED_OUTCOME

    def to_dict(self) -> dict[str, Any]:
        return {"action": self.action, "outcome": self.outcome, "details": dict(self.details)}


class CoinLedger:
    """Creates coins and moves them between caches and the player's inventory.

    Every coin has exactly one holder: a cache key or ``INVENTORY_HOLDER``.
    The methods here are the only mutation path, and ``check_invariants`` runs
    after each of them.
    """

    def __init__(self, board: Board) -> None:
        self.board = board
        self._caches: dict[str, list[Geocoin]] = {}
        self._created_counts: dict[str, int] = {}
        self._generated: set[str] = set()
        self._inventory: list[Geocoin] = []
        self._holders: dict[Geocoin, str] = {}
        self._score = 0

    @property
    def score(self) -> int:
        return self._score

    @property
    def inventory(self) -> tuple[Geocoin, ...]:
        return tuple(self._inventory)

    def coins_at(self, cell: Cell | str) -> tuple[Geocoin, ...]:
        return tuple(self._caches.get(_cell_key(cell), ()))

    def live_cache_keys(self) -> list[str]:
        return sorted(self._caches)

    def is_live(self, cell: Cell | str) -> bool:
        return _cell_key(cell) in self._caches

    def is_generated(self, cell: Cell | str) -> bool:
        return _cell_key(cell) in self._generated

    def mark_generated(self, cell: Cell | str) -> None:
        key = _cell_key(cell)
        self._generated.add(key)
        self._caches.setdefault(key, [])

    def created_count(self, cell: Cell | str) -> int:
        return self._created_counts.get(_cell_key(cell), 0)

    def is_collected(self, coin: Geocoin) -> bool:
        return self._holders.get(coin) == INVENTORY_HOLDER

    def holder_of(self, coin: Geocoin) -> str | None:
        return self._holders.get(coin)

    def total_coins(self) -> int:
        return len(self._holders)

    def find_coin(self, cell: Cell | str, label: str) -> Geocoin | None:
        for coin in self._caches.get(_cell_key(cell), ()):
            if coin.label() == label:
                return coin
        return None

    def create(self, cell: Cell) -> Geocoin:
        key = cell.key()
        serial = self._created_counts.get(key, 0)
        self._created_counts[key] = serial + 1
        southwest = self.board.southwest(cell)
        coin = Geocoin(origin_key=key, latitude=southwest.lat, longitude=southwest.lng, serial=serial)
        self.mark_generated(key)
        self.add_to_cache(cell, coin)
        self.check_invariants()
        return coin

    def add_to_cache(self, cell: Cell | str, coin: Geocoin) -> None:
        key = _cell_key(cell)
        assert coin not in self._holders, f"coin {coin.label()} already held by {self._holders[coin]}"
        self._caches.setdefault(key, []).append(coin)
        self._holders[coin] = key
        self._note_serial(coin)

    def remove_from_cache(self, cell: Cell | str, coin: Geocoin) -> bool:
        key = _cell_key(cell)
        coins = self._caches.get(key)
        if coins is None or coin not in coins:
            return False
        coins.remove(coin)
        del self._holders[coin]
        self.check_invariants()
        return True

    def collect(self, coin: Geocoin) -> ActionOutcome:
        details = {"coin": coin.label()}
        holder = self._holders.get(coin)
        if holder is None:
            return ActionOutcome("collect", "unknown_coin", details)
        if holder == INVENTORY_HOLDER:
            return ActionOutcome("collect", "already_collected", details)
        self.remove_from_cache(holder, coin)
        self._inventory.append(coin)
        self._holders[coin] = INVENTORY_HOLDER
        self._score += 1
        details["cache"] = holder
        self.check_invariants()
        return ActionOutcome("collect", APPLIED_OUTCOME, details)

    def deposit(self, cell: Cell | str) -> ActionOutcome:
        key = _cell_key(cell)
        if not self._inventory:
            return ActionOutcome("deposit", "nothing_to_deposit", {"cache": key})
        coin = self._inventory.pop()
        del self._holders[coin]
        self._score -= 1
        self.add_to_cache(key, coin)
        self.check_invariants()
        return ActionOutcome("deposit", APPLIED_OUTCOME, {"cache": key, "coin": coin.label()})

    def capture(self, cell: Cell | str) -> CacheMemento:
        key = _cell_key(cell)
        return CacheMemento(cell_key=key, coins=tuple(self._caches.get(key, ())))

    def restore(self, memento: CacheMemento) -> None:
        self.evict(memento.cell_key)
        self._generated.add(memento.cell_key)
        self._caches[memento.cell_key] = []
        for coin in memento.coins:
            self.add_to_cache(memento.cell_key, coin)
        self.check_invariants()

    def evict(self, cell: Cell | str) -> None:
        """Drop a live cache from memory; its coins live on only in its snapshot."""
        key = _cell_key(cell)
        for coin in self._caches.pop(key, ()):
            del self._holders[coin]

    def discard(self, cell: Cell | str) -> None:
        """Forget a cache entirely so its next visit regenerates it."""
        key = _cell_key(cell)
        assert all(coin.origin_key == key for coin in self._caches.get(key, ())), (
            f"cache {key} still holds displaced coins"
        )
        self.evict(key)
        self._generated.discard(key)
        if not any(coin.origin_key == key for coin in self._holders):
            self._created_counts.pop(key, None)
        self.check_invariants()

    def adopt_inventory(self, coins: list[Geocoin]) -> None:
        for coin in self._inventory:
            del self._holders[coin]
        self._inventory = []
        for coin in coins:
            assert coin not in self._holders, f"coin {coin.label()} already held by {self._holders[coin]}"
            self._inventory.append(coin)
            self._holders[coin] = INVENTORY_HOLDER
            self._note_serial(coin)
        self._score = len(self._inventory)
        self.check_invariants()

    def return_all_to_origin(self, stranded: Iterable[Geocoin] = ()) -> list[Geocoin]:
        """Send every displaced coin home and start a new generation epoch.

        ``stranded`` are displaced coins recorded only in the snapshot of an
        evicted cache; they are not held by the ledger until routed here.

        Coins go back to the cache keyed by their origin cell, never to the
        cell their coordinates happen to fall in. Caches whose origin is not
        live are regenerated from scratch on their next visit, so displaced
        coins from those origins are dropped here and reappear there.
        """
        displaced = list(self._inventory)
        for key, coins in self._caches.items():
            displaced.extend(coin for coin in coins if coin.origin_key != key)
        for coin in displaced:
            holder = self._holders.pop(coin)
            if holder == INVENTORY_HOLDER:
                continue
            self._caches[holder].remove(coin)
        for coin in stranded:
            assert coin not in self._holders, f"stranded coin {coin.label()} is still held by {self._holders[coin]}"
            displaced.append(coin)
        self._inventory = []
        self._score = 0
        for coin in displaced:
            if coin.origin_key in self._caches:
                self._caches[coin.origin_key].append(coin)
                self._holders[coin] = coin.origin_key
        for coins in self._caches.values():
            coins.sort(key=lambda coin: coin.serial)
        live_keys = set(self._caches)
        self._generated &= live_keys
        self._created_counts = {key: count for key, count in self._created_counts.items() if key in live_keys}
        self.check_invariants()
        return displaced

    def check_invariants(self) -> None:
        seen: set[Geocoin] = set()
        for key, coins in self._caches.items():
            for coin in coins:
                assert coin not in seen, f"coin {coin.label()} appears in two containers"
                assert self._holders.get(coin) == key, f"coin {coin.label()} holder mismatch"
                seen.add(coin)
        for coin in self._inventory:
            assert coin not in seen, f"coin {coin.label()} appears in two containers"
            assert self._holders.get(coin) == INVENTORY_HOLDER, f"coin {coin.label()} holder mismatch"
            seen.add(coin)
        assert len(seen) == len(self._holders), "ledger tracks coins outside any container"
        assert self._score == len(self._inventory), "score drifted from inventory size"
        for coin in seen:
            assert coin.serial < self._created_counts.get(coin.origin_key, 0), (
                f"coin {coin.label()} serial not covered by its origin counter"
            )

    def _note_serial(self, coin: Geocoin) -> None:
        if coin.serial >= self._created_counts.get(coin.origin_key, 0):
            self._created_counts[coin.origin_key] = coin.serial + 1


def _cell_key(cell: Cell | str) -> str:
    return cell if isinstance(cell, str) else cell.key()
