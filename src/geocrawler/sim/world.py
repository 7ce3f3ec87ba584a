from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from geocrawler.sim.board import DEFAULT_ORIGIN, DEFAULT_VISIBILITY_RADIUS, TILE_DEGREES, Board, Cell, LatLng
from geocrawler.sim.display import CachePopup, DisplaySurface
from geocrawler.sim.ledger import APPLIED_OUTCOME, ActionOutcome, CacheMemento, CoinLedger, Geocoin
from geocrawler.sim.rng import LuckFn, cache_spawns, initial_coin_count, luck

CACHE_SPAWN_PROBABILITY = 0.1
MAX_COINS_EXCLUSIVE = 10
AUTOSAVE_INTERVAL_SECONDS = 10.0
MAX_OUTCOME_TRACE = 256

DIRECTION_STEPS: dict[str, tuple[int, int]] = {
    "north": (1, 0),
    "south": (-1, 0),
    "east": (0, 1),
    "west": (0, -1),
}


class CellPhase(str, Enum):
    UNKNOWN = "unknown"
    GENERATED = "generated"
    RESTORED = "restored"


class StateChange(str, Enum):
    MOVED = "moved"
    COLLECTED = "collected"
    DEPOSITED = "deposited"
    RESET = "reset"
    RESTORED = "restored"
    MATERIALIZED = "materialized"


def _require_number(value: Any, *, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be numeric")
    return float(value)


@dataclass(frozen=True)
class WorldConfig:
    origin: LatLng = DEFAULT_ORIGIN
    tile_size: float = TILE_DEGREES
    visibility_radius: int = DEFAULT_VISIBILITY_RADIUS
    spawn_probability: float = CACHE_SPAWN_PROBABILITY
    max_coins_exclusive: int = MAX_COINS_EXCLUSIVE
    autosave_interval_seconds: float = AUTOSAVE_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        if _require_number(self.tile_size, field_name="tile_size") <= 0:
            raise ValueError("tile_size must be > 0")
        if isinstance(self.visibility_radius, bool) or not isinstance(self.visibility_radius, int):
            raise ValueError("visibility_radius must be an integer")
        if self.visibility_radius < 0:
            raise ValueError("visibility_radius must be >= 0")
        probability = _require_number(self.spawn_probability, field_name="spawn_probability")
        if probability < 0.0 or probability > 1.0:
            raise ValueError("spawn_probability must be within [0.0, 1.0]")
        if isinstance(self.max_coins_exclusive, bool) or not isinstance(self.max_coins_exclusive, int):
            raise ValueError("max_coins_exclusive must be an integer")
        if self.max_coins_exclusive <= 0:
            raise ValueError("max_coins_exclusive must be > 0")
        if _require_number(self.autosave_interval_seconds, field_name="autosave_interval_seconds") <= 0:
            raise ValueError("autosave_interval_seconds must be > 0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "origin": self.origin.to_dict(),
            "tile_size": self.tile_size,
            "visibility_radius": self.visibility_radius,
            "spawn_probability": self.spawn_probability,
            "max_coins_exclusive": self.max_coins_exclusive,
            "autosave_interval_seconds": self.autosave_interval_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorldConfig":
        defaults = cls()
        return cls(
            origin=LatLng.from_dict(data["origin"]) if "origin" in data else defaults.origin,
            tile_size=data.get("tile_size", defaults.tile_size),
            visibility_radius=data.get("visibility_radius", defaults.visibility_radius),
            spawn_probability=data.get("spawn_probability", defaults.spawn_probability),
            max_coins_exclusive=data.get("max_coins_exclusive", defaults.max_coins_exclusive),
            autosave_interval_seconds=data.get("autosave_interval_seconds", defaults.autosave_interval_seconds),
        )


@dataclass
class PlayerState:
    position: LatLng
    movement_history: list[LatLng] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": self.position.to_dict(),
            "movementHistory": [point.to_dict() for point in self.movement_history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlayerState":
        raw_history = data.get("movementHistory", [])
        if not isinstance(raw_history, list):
            raise ValueError("movementHistory must be a list")
        return cls(
            position=LatLng.from_dict(data["position"]),
            movement_history=[LatLng.from_dict(row) for row in raw_history],
        )


WorldListener = Callable[["GameWorld", StateChange], None]


class GameWorld:
    """Owns player, ledger and snapshots; decides generate-vs-restore per cell.

    Every mutating command finishes with exactly one ``persist`` call and one
    round of listener notifications. Rejected commands do neither.
    """

    def __init__(
        self,
        config: WorldConfig | None = None,
        *,
        display: DisplaySurface | None = None,
        persist: Callable[[GameWorld], None] | None = None,
        luck_fn: LuckFn = luck,
    ) -> None:
        self.config = config if config is not None else WorldConfig()
        self.board = Board(self.config.tile_size, self.config.visibility_radius, self.config.origin)
        self.ledger = CoinLedger(self.board)
        self.player = PlayerState(position=self.config.origin)
        self.snapshots: dict[str, CacheMemento] = {}
        self.display = display if display is not None else DisplaySurface()
        self.persist = persist
        self.luck_fn = luck_fn
        self._materialized: dict[str, Cell] = {}
        self._phases: dict[str, CellPhase] = {}
        self._listeners: list[WorldListener] = []
        self._outcome_trace: list[dict[str, Any]] = []

    @property
    def score(self) -> int:
        return self.ledger.score

    @property
    def inventory(self) -> tuple[Geocoin, ...]:
        return self.ledger.inventory

    def subscribe(self, listener: WorldListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: WorldListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def start(self) -> None:
        self.display.pan_to(self.player.position)
        self.recompute_neighborhood()
        self._commit(StateChange.MATERIALIZED)

    def materialized_keys(self) -> list[str]:
        return list(self._materialized)

    def phase_of(self, cache_key: str) -> CellPhase:
        return self._phases.get(cache_key, CellPhase.UNKNOWN)

    def current_cell(self) -> Cell:
        return self.board.cell_for_point(self.player.position)

    def recompute_neighborhood(self) -> list[str]:
        cells = self.board.cells_near_point(self.player.position)
        visible = {cell.key() for cell in cells}
        for key in list(self._materialized):
            if key in visible:
                continue
            del self._materialized[key]
            self._phases.pop(key, None)
            if key in self.snapshots:
                self.ledger.evict(key)
            self.display.clear_cache(key)
        for cell in cells:
            key = cell.key()
            if key in self._materialized:
                continue
            phase = self._resolve(cell)
            if phase is CellPhase.UNKNOWN:
                continue
            self._materialized[key] = cell
            self._phases[key] = phase
            self.display.draw_cache(key, self.board.bounds(cell), lambda cache_key=key: self.popup(cache_key))
        return self.materialized_keys()

    def _resolve(self, cell: Cell) -> CellPhase:
        key = cell.key()
        memento = self.snapshots.get(key)
        if memento is not None:
            if not self.ledger.is_live(key):
                self.ledger.restore(memento)
            return CellPhase.RESTORED
        if self.ledger.is_live(key):
            self.snapshots[key] = self.ledger.capture(key)
            return CellPhase.GENERATED
        if not cache_spawns(cell, self.config.spawn_probability, self.luck_fn):
            return CellPhase.UNKNOWN
        for _ in range(initial_coin_count(cell, self.config.max_coins_exclusive, self.luck_fn)):
            self.ledger.create(cell)
        self.snapshots[key] = self.ledger.capture(key)
        return CellPhase.GENERATED

    def move(self, direction: str) -> ActionOutcome:
        step = DIRECTION_STEPS.get(direction)
        if step is None:
            return self._record(ActionOutcome("move", "unknown_direction", {"direction": direction}))
        current = self.player.position
        destination = LatLng(
            lat=current.lat + step[0] * self.config.tile_size,
            lng=current.lng + step[1] * self.config.tile_size,
        )
        self._relocate(destination)
        return self._record(ActionOutcome("move", APPLIED_OUTCOME, {"direction": direction, "to": destination.to_dict()}))

    def move_to(self, point: LatLng) -> ActionOutcome:
        self._relocate(point)
        return self._record(ActionOutcome("move_to", APPLIED_OUTCOME, {"to": point.to_dict()}))

    def _relocate(self, point: LatLng) -> None:
        self.player.position = point
        self.player.movement_history.append(point)
        self.display.pan_to(point)
        self.recompute_neighborhood()
        self._commit(StateChange.MOVED)

    def collect(self, cache_key: str, coin_label: str) -> ActionOutcome:
        details = {"cache": cache_key, "coin": coin_label}
        if cache_key not in self._materialized:
            return self._record(ActionOutcome("collect", "unknown_cache", details))
        coin = self.ledger.find_coin(cache_key, coin_label)
        if coin is None:
            held = any(candidate.label() == coin_label for candidate in self.ledger.inventory)
            return self._record(ActionOutcome("collect", "already_collected" if held else "unknown_coin", details))
        outcome = self.ledger.collect(coin)
        if outcome.applied:
            self.snapshots[cache_key] = self.ledger.capture(cache_key)
            self._commit(StateChange.COLLECTED)
        return self._record(outcome)

    def deposit(self, cache_key: str) -> ActionOutcome:
        if cache_key not in self._materialized:
            return self._record(ActionOutcome("deposit", "unknown_cache", {"cache": cache_key}))
        outcome = self.ledger.deposit(cache_key)
        if outcome.applied:
            self.snapshots[cache_key] = self.ledger.capture(cache_key)
            self._commit(StateChange.DEPOSITED)
        return self._record(outcome)

    def reset(self, *, confirmed: bool = False) -> ActionOutcome:
        if not confirmed:
            return self._record(ActionOutcome("reset", "not_confirmed"))
        stranded = [
            coin
            for key, memento in self.snapshots.items()
            if not self.ledger.is_live(key)
            for coin in memento.coins
            if coin.origin_key != key
        ]
        returned = self.ledger.return_all_to_origin(stranded)
        home_keys = {cell.key() for cell in self.board.cells_near_point(self.config.origin)}
        for key in self.ledger.live_cache_keys():
            if key not in home_keys:
                self.ledger.discard(key)
        for key in list(self._materialized):
            self.display.clear_cache(key)
        self._materialized.clear()
        self._phases.clear()
        self.snapshots.clear()
        self.player = PlayerState(position=self.config.origin)
        self.display.pan_to(self.player.position)
        self.recompute_neighborhood()
        self._commit(StateChange.RESET)
        return self._record(ActionOutcome("reset", APPLIED_OUTCOME, {"returned": [coin.label() for coin in returned]}))

    def restore_saved_state(
        self,
        *,
        player: PlayerState | None,
        inventory: list[Geocoin] | None,
        snapshots: list[CacheMemento] | None,
    ) -> None:
        """Replace in-memory state with loaded records; ``None`` means fresh defaults."""
        for key in list(self._materialized):
            self.display.clear_cache(key)
        self._materialized.clear()
        self._phases.clear()
        self.ledger = CoinLedger(self.board)
        self.player = player if player is not None else PlayerState(position=self.config.origin)
        self.snapshots = {memento.cell_key: memento for memento in snapshots or []}
        self.ledger.adopt_inventory(list(inventory or []))
        self.display.pan_to(self.player.position)
        self.recompute_neighborhood()
        self._notify(StateChange.RESTORED)

    def popup(self, cache_key: str) -> CachePopup:
        cell = self.board.cell_for_key(cache_key)
        southwest = self.board.southwest(cell)
        return CachePopup(
            cache_key=cache_key,
            southwest_label=f"{southwest.lat:.5f}:{southwest.lng:.5f}",
            coin_labels=tuple(coin.label() for coin in self.ledger.coins_at(cache_key)),
            can_deposit=bool(self.ledger.inventory),
        )

    def save(self) -> None:
        if self.persist is not None:
            self.persist(self)

    def outcome_trace(self) -> list[dict[str, Any]]:
        return [dict(entry) for entry in self._outcome_trace]

    def to_dict(self) -> dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "player": self.player.to_dict(),
            "score": self.score,
            "inventory": [coin.to_dict(collected=True) for coin in self.ledger.inventory],
            "snapshots": [self.snapshots[key].to_dict() for key in sorted(self.snapshots)],
        }

    def _commit(self, change: StateChange) -> None:
        self.save()
        self._notify(change)

    def _notify(self, change: StateChange) -> None:
        for listener in list(self._listeners):
            listener(self, change)

    def _record(self, outcome: ActionOutcome) -> ActionOutcome:
        self._outcome_trace.append(outcome.to_dict())
        if len(self._outcome_trace) > MAX_OUTCOME_TRACE:
            del self._outcome_trace[: len(self._outcome_trace) - MAX_OUTCOME_TRACE]
        return outcome
