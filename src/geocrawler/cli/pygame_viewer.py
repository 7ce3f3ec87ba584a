from __future__ import annotations

import argparse
import importlib.metadata
import os
import platform
import sys
from dataclasses import dataclass, field
from typing import Any

from geocrawler.cli.viewer import GameController, open_world, saved_summary
from geocrawler.content.io import JsonFileStore
from geocrawler.sim.board import LatLng
from geocrawler.sim.display import DisplaySurface, PopupProducer
from geocrawler.sim.periodic import AUTOSAVE_TASK_NAME, PeriodicScheduler
from geocrawler.sim.sensors import SensorTracker, UnavailableGeolocationSource
from geocrawler.sim.world import GameWorld, WorldConfig

WINDOW_SIZE = (1200, 800)
PANEL_WIDTH = 380
TILE_PIXELS = 26
DEFAULT_STORE_PATH = "saves/geocrawler_store.json"
LOG_PREFIX = "[geocrawler.viewer]"
MAX_COLLECT_HOTKEYS = 9

BACKGROUND_COLOR = (17, 18, 25)
GRID_COLOR = (34, 37, 48)
CACHE_FILL_COLOR = (80, 160, 255)
CACHE_EMPTY_COLOR = (70, 76, 96)
CACHE_CURRENT_COLOR = (240, 200, 90)
PLAYER_COLOR = (235, 80, 80)
TEXT_COLOR = (230, 230, 235)

KEY_ACTIONS: dict[str, tuple[str, str | None]] = {
    "up": ("move", "north"),
    "down": ("move", "south"),
    "right": ("move", "east"),
    "left": ("move", "west"),
    "d": ("deposit", None),
    "g": ("toggle_tracking", None),
    "r": ("request_reset", None),
    "f5": ("save", None),
}
KEY_ACTIONS.update({str(index): ("collect", str(index)) for index in range(1, MAX_COLLECT_HOTKEYS + 1)})

pygame: Any | None = None


def action_for_key_name(name: str, *, reset_pending: bool = False) -> tuple[str, str | None] | None:
    if reset_pending:
        if name == "y":
            return ("confirm_reset", None)
        return ("cancel_reset", None)
    return KEY_ACTIONS.get(name)


def latlng_to_pixel(point: LatLng, center: LatLng, tile_size: float, screen_center: tuple[float, float]) -> tuple[float, float]:
    """North is up: latitude grows toward the top of the window."""
    x = screen_center[0] + (point.lng - center.lng) / tile_size * TILE_PIXELS
    y = screen_center[1] - (point.lat - center.lat) / tile_size * TILE_PIXELS
    return (x, y)


def bounds_to_rect(
    bounds: tuple[LatLng, LatLng],
    center: LatLng,
    tile_size: float,
    screen_center: tuple[float, float],
) -> tuple[int, int, int, int]:
    southwest, northeast = bounds
    left, bottom = latlng_to_pixel(southwest, center, tile_size, screen_center)
    right, top = latlng_to_pixel(northeast, center, tile_size, screen_center)
    return (round(left), round(top), max(1, round(right - left)), max(1, round(bottom - top)))


@dataclass
class PygameDisplay(DisplaySurface):
    """Keeps what the world asked to show; ``draw`` paints it each frame."""

    tile_size: float
    center: LatLng
    rectangles: dict[str, tuple[LatLng, LatLng]] = field(default_factory=dict)
    popups: dict[str, PopupProducer] = field(default_factory=dict)

    def draw_cache(self, cache_key: str, bounds: tuple[LatLng, LatLng], popup: PopupProducer) -> None:
        self.rectangles[cache_key] = bounds
        self.popups[cache_key] = popup

    def clear_cache(self, cache_key: str) -> None:
        self.rectangles.pop(cache_key, None)
        self.popups.pop(cache_key, None)

    def pan_to(self, point: LatLng) -> None:
        self.center = point

    def draw(self, screen: Any, font: Any, viewport: Any, current_key: str) -> None:
        screen_center = (float(viewport.centerx), float(viewport.centery))
        for cache_key in sorted(self.rectangles):
            rect = bounds_to_rect(self.rectangles[cache_key], self.center, self.tile_size, screen_center)
            popup = self.popups[cache_key]()
            if cache_key == current_key:
                color = CACHE_CURRENT_COLOR
            elif popup.coin_labels:
                color = CACHE_FILL_COLOR
            else:
                color = CACHE_EMPTY_COLOR
            pygame.draw.rect(screen, color, rect, 0 if popup.coin_labels else 2)
            if popup.coin_labels:
                label = font.render(str(len(popup.coin_labels)), True, BACKGROUND_COLOR)
                screen.blit(label, (rect[0] + 4, rect[1] + 2))
        player_x, player_y = latlng_to_pixel(self.center, self.center, self.tile_size, screen_center)
        pygame.draw.circle(screen, PLAYER_COLOR, (int(player_x), int(player_y)), 6)


def _draw_panel(screen: Any, world: GameWorld, font: Any, status_message: str | None, tracking: bool, reset_pending: bool) -> None:
    panel_x = WINDOW_SIZE[0] - PANEL_WIDTH + 12
    lines = [
        f"Points: {world.score}",
        f"Tracking: {'on' if tracking else 'off'}",
        f"Cell: {world.current_cell().key()}",
        "Inventory:",
    ]
    lines.extend(f"  {coin.describe()}" for coin in world.inventory[-12:])
    current_key = world.current_cell().key()
    if current_key in world.materialized_keys():
        popup = world.popup(current_key)
        lines.append(f"Cache at {popup.southwest_label}")
        for index, label in enumerate(popup.coin_labels[:MAX_COLLECT_HOTKEYS], start=1):
            lines.append(f"  [{index}] collect {label}")
        lines.append("  [D] deposit a coin" if popup.can_deposit else "  (nothing to deposit)")
    else:
        lines.append("No cache here.")
    if reset_pending:
        lines.append("Reset the game? [Y]es / any other key cancels")
    if status_message:
        lines.append(status_message)
    for row, text in enumerate(lines):
        screen.blit(font.render(text, True, TEXT_COLOR), (panel_x, 12 + row * 22))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m geocrawler.cli.pygame_viewer", description="Run the Geocrawler pygame viewer.")
    parser.add_argument("--store-path", default=DEFAULT_STORE_PATH, help="JSON file backing the persistent store.")
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Force SDL dummy video driver for CI/testing and exit without opening a real window.",
    )
    return parser


def _env_flag_enabled(var_name: str) -> bool:
    return os.environ.get(var_name, "").strip().lower() in {"1", "true", "yes", "on"}


def _print_startup_banner() -> None:
    try:
        pygame_version = importlib.metadata.version("pygame")
    except importlib.metadata.PackageNotFoundError:
        pygame_version = "not-installed"
    print(f"{LOG_PREFIX} startup python={platform.python_version()} pygame={pygame_version} platform={platform.platform()}")


def _ensure_pygame_imported() -> Any:
    global pygame
    if pygame is None:
        import pygame as pygame_module

        pygame = pygame_module
    return pygame


def run_pygame_viewer(
    store_path: str = DEFAULT_STORE_PATH,
    *,
    config: WorldConfig | None = None,
    headless: bool = False,
) -> int:
    if headless:
        os.environ["SDL_VIDEODRIVER"] = "dummy"
        print(f"{LOG_PREFIX} warning: headless mode active; no window will open.")

    _print_startup_banner()
    pygame_module = _ensure_pygame_imported()

    try:
        pygame_module.init()
    except Exception as exc:
        print(f"{LOG_PREFIX} failed during pygame.init(): {exc}", file=sys.stderr)
        return 1

    world_config = config if config is not None else WorldConfig()
    display = PygameDisplay(tile_size=world_config.tile_size, center=world_config.origin)
    store = JsonFileStore(store_path)
    try:
        world = open_world(store, world_config, display=display)
    except Exception as exc:
        print(f"{LOG_PREFIX} failed to initialize world: {exc}", file=sys.stderr)
        pygame_module.quit()
        return 1

    source = UnavailableGeolocationSource()
    controller = GameController(world)
    controller.tracker = SensorTracker(world, source, on_status=controller.report)
    scheduler = PeriodicScheduler()
    scheduler.register_task(
        task_name=AUTOSAVE_TASK_NAME,
        interval_seconds=world_config.autosave_interval_seconds,
        callback=lambda _task: world.save(),
    )

    try:
        pygame_module.display.set_caption("Geocrawler")
        screen = pygame_module.display.set_mode(WINDOW_SIZE)
    except Exception as exc:
        print(
            f"{LOG_PREFIX} failed during pygame.display.set_mode(...): {exc}. "
            "Hint: use --headless or GEOCRAWLER_HEADLESS=1 without a display.",
            file=sys.stderr,
        )
        pygame_module.quit()
        return 1

    font = pygame_module.font.SysFont("consolas", 18)
    viewport = pygame_module.Rect(0, 0, WINDOW_SIZE[0] - PANEL_WIDTH, WINDOW_SIZE[1])
    clock = pygame_module.time.Clock()
    reset_pending = False
    running = True

    while running:
        dt = clock.tick(60) / 1000.0
        scheduler.advance(dt)
        source.pump()

        for event in pygame_module.event.get():
            if event.type == pygame_module.QUIT:
                running = False
                continue
            if event.type != pygame_module.KEYDOWN:
                continue
            if event.key == pygame_module.K_ESCAPE and not reset_pending:
                running = False
                continue
            action = action_for_key_name(pygame_module.key.name(event.key), reset_pending=reset_pending)
            if action is None:
                continue
            name, argument = action
            current_key = world.current_cell().key()
            if name == "move" and argument is not None:
                controller.move(argument)
            elif name == "collect" and argument is not None:
                popup_labels = world.popup(current_key).coin_labels if current_key in world.materialized_keys() else ()
                index = int(argument) - 1
                if index < len(popup_labels):
                    controller.collect(current_key, popup_labels[index])
            elif name == "deposit":
                controller.deposit(current_key)
            elif name == "toggle_tracking":
                controller.toggle_sensor_tracking()
            elif name == "request_reset":
                reset_pending = True
            elif name == "confirm_reset":
                reset_pending = False
                controller.reset_game(lambda _prompt: True)
            elif name == "cancel_reset":
                reset_pending = False
                controller.reset_game(lambda _prompt: False)
            elif name == "save":
                world.save()
                controller.report(f"saved {store.path}")
                print(saved_summary(store, world))

        screen.fill(BACKGROUND_COLOR)
        display.draw(screen, font, viewport, world.current_cell().key())
        pygame_module.draw.rect(screen, GRID_COLOR, viewport, 1)
        _draw_panel(screen, world, font, controller.status_message, controller.tracker.active, reset_pending)
        pygame_module.display.flip()

        if headless:
            running = False

    controller.tracker.stop()
    world.save()
    print(saved_summary(store, world))
    pygame_module.quit()
    return 0


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    headless = args.headless or _env_flag_enabled("GEOCRAWLER_HEADLESS")
    raise SystemExit(run_pygame_viewer(store_path=args.store_path, headless=headless))


if __name__ == "__main__":
    main()
