from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

from geocrawler.content.io import (
    CACHE_STATE_KEY,
    PLAYER_STATE_KEY,
    JsonFileStore,
    KeyValueStore,
    load_world_state,
    save_world_state,
)
from geocrawler.sim.display import DisplaySurface
from geocrawler.sim.hash import save_hash, world_hash
from geocrawler.sim.ledger import ActionOutcome
from geocrawler.sim.sensors import GeoFix, GeolocationSource, ScriptedGeolocationSource, SensorTracker
from geocrawler.sim.world import DIRECTION_STEPS, GameWorld, WorldConfig

LOG_PREFIX = "[geocrawler.viewer]"
RESET_PROMPT = "Reset the game? Every coin goes home and your history is erased."

OUTCOME_MESSAGES: dict[str, str] = {
    "nothing_to_deposit": "No coins to deposit!",
    "already_collected": "That coin is already in your pocket.",
    "unknown_coin": "No such coin in this cache.",
    "unknown_cache": "That cache is not within reach.",
    "unknown_direction": "Unknown direction.",
    "not_confirmed": "Reset cancelled.",
}


def open_world(
    store: KeyValueStore,
    config: WorldConfig | None = None,
    *,
    display: DisplaySurface | None = None,
) -> GameWorld:
    """Build a world wired to ``store``, load prior state and materialize the neighbourhood."""
    world = GameWorld(config, display=display, persist=lambda saved: save_world_state(store, saved))
    discarded = load_world_state(store, world)
    if discarded:
        print(f"{LOG_PREFIX} started with fresh defaults for: {', '.join(discarded)}", file=sys.stderr)
    world.start()
    print(
        f"{LOG_PREFIX} loaded "
        f"score={world.score} caches={len(world.snapshots)} "
        f"world_hash={world_hash(world)}"
    )
    return world


def saved_summary(store: JsonFileStore, world: GameWorld) -> str:
    records = {key: store.get(key) for key in (PLAYER_STATE_KEY, CACHE_STATE_KEY)}
    return f"{LOG_PREFIX} saved path={store.path} world_hash={world_hash(world)} save_hash={save_hash(records)}"


class AsciiViewer:
    """Read-only projection of world state for terminal display."""

    def render(self, world: GameWorld) -> str:
        position = world.player.position
        current = world.current_cell()
        lines = [
            f"Points: {world.score}",
            f"Position: {position.lat:.5f}:{position.lng:.5f} cell={current.key()} moves={len(world.player.movement_history)}",
            "Inventory:",
        ]
        lines.extend(f"  {coin.describe()}" for coin in world.inventory)
        keys = world.materialized_keys()
        lines.append(f"Caches in range: {len(keys)}")
        for key in keys:
            popup = world.popup(key)
            marker = "*" if key == current.key() else " "
            coins = " ".join(popup.coin_labels) if popup.coin_labels else "<empty>"
            lines.append(f" {marker}[{key}] at {popup.southwest_label} ({world.phase_of(key).value}): {coins}")
        return "\n".join(lines)


class GameController:
    """User-command adapter; issues commands to the world but does not own state.

    At most one command is in flight at a time; a command arriving while
    another is still running is dropped rather than queued.
    """

    def __init__(self, world: GameWorld, tracker: SensorTracker | None = None) -> None:
        self.world = world
        self.tracker = tracker
        self.status_message: str | None = None
        self._busy = False

    def move(self, direction: str) -> ActionOutcome | None:
        return self._run(lambda: self.world.move(direction))

    def collect(self, cache_key: str, coin_label: str) -> ActionOutcome | None:
        return self._run(lambda: self.world.collect(cache_key, coin_label))

    def deposit(self, cache_key: str | None = None) -> ActionOutcome | None:
        target = cache_key if cache_key is not None else self.world.current_cell().key()
        return self._run(lambda: self.world.deposit(target))

    def reset_game(self, confirm: Callable[[str], bool]) -> ActionOutcome | None:
        return self._run(lambda: self.world.reset(confirmed=bool(confirm(RESET_PROMPT))))

    def toggle_sensor_tracking(self) -> bool:
        if self.tracker is None:
            self.status_message = "No position sensor available."
            return False
        return self.tracker.toggle()

    def report(self, message: str) -> None:
        self.status_message = message

    def _run(self, action: Callable[[], ActionOutcome]) -> ActionOutcome | None:
        if self._busy:
            return None
        self._busy = True
        try:
            outcome = action()
        finally:
            self._busy = False
        self.status_message = None if outcome.applied else OUTCOME_MESSAGES.get(outcome.outcome, outcome.outcome)
        return outcome


DIRECTION_ALIASES = {"n": "north", "s": "south", "e": "east", "w": "west"}


def run_text_session(
    store_path: str | Path,
    config: WorldConfig | None = None,
    *,
    source: GeolocationSource | None = None,
    input_fn: Callable[[str], str] = input,
) -> int:
    store = JsonFileStore(store_path)
    world = open_world(store, config)
    sensor_source = source if source is not None else ScriptedGeolocationSource()
    controller = GameController(world)
    controller.tracker = SensorTracker(world, sensor_source, on_status=controller.report)
    view = AsciiViewer()

    print("Geocrawler. Commands: n|s|e|w | show | collect <cache> <coin> | deposit [cache] | track | fix <lat> <lng> | reset | quit")
    print(view.render(world))

    while True:
        try:
            raw = input_fn("> ").strip()
        except EOFError:
            break
        parts = raw.split()
        if not parts:
            continue
        command = parts[0]
        if command in {"quit", "exit"}:
            break
        if command == "show":
            print(view.render(world))
            continue
        if command in DIRECTION_ALIASES or command in DIRECTION_STEPS:
            controller.move(DIRECTION_ALIASES.get(command, command))
        elif command == "collect" and len(parts) == 3:
            controller.collect(parts[1], parts[2])
        elif command == "deposit" and len(parts) <= 2:
            controller.deposit(parts[1] if len(parts) == 2 else None)
        elif command == "track":
            controller.toggle_sensor_tracking()
        elif command == "fix" and len(parts) == 3 and isinstance(sensor_source, ScriptedGeolocationSource):
            try:
                fix = GeoFix(latitude=float(parts[1]), longitude=float(parts[2]))
            except ValueError:
                print("fix expects two numbers")
                continue
            sensor_source.push(fix)
            if not sensor_source.pump():
                print("fix queued; tracking is off")
        elif command == "reset":
            controller.reset_game(lambda prompt: input_fn(f"{prompt} [y/N] ").strip().lower() in {"y", "yes"})
        else:
            print("unknown command")
            continue
        if controller.status_message:
            print(controller.status_message)
        print(view.render(world))

    if controller.tracker is not None:
        controller.tracker.stop()
    world.save()
    print(saved_summary(store, world))
    return 0
