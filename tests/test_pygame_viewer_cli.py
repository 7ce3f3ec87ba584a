import pytest

from geocrawler.cli import pygame_viewer
from geocrawler.cli.pygame_viewer import (
    DEFAULT_STORE_PATH,
    TILE_PIXELS,
    PygameDisplay,
    _build_parser,
    action_for_key_name,
    bounds_to_rect,
    latlng_to_pixel,
)
from geocrawler.sim.board import NULL_ISLAND, LatLng
from geocrawler.sim.world import GameWorld, WorldConfig


def test_viewer_parser_defaults() -> None:
    args = _build_parser().parse_args([])

    assert args.store_path == DEFAULT_STORE_PATH
    assert args.headless is False


def test_viewer_parser_accepts_store_path_and_headless() -> None:
    args = _build_parser().parse_args(["--store-path", "saves/dev.json", "--headless"])

    assert args.store_path == "saves/dev.json"
    assert args.headless is True


def test_key_mapping_covers_moves_and_collect_hotkeys() -> None:
    assert action_for_key_name("up") == ("move", "north")
    assert action_for_key_name("left") == ("move", "west")
    assert action_for_key_name("d") == ("deposit", None)
    assert action_for_key_name("3") == ("collect", "3")
    assert action_for_key_name("q") is None


def test_pending_reset_consumes_the_next_key() -> None:
    assert action_for_key_name("y", reset_pending=True) == ("confirm_reset", None)
    assert action_for_key_name("up", reset_pending=True) == ("cancel_reset", None)


def test_pixel_mapping_puts_north_up() -> None:
    center = LatLng(10.0, 20.0)

    assert latlng_to_pixel(center, center, 1.0, (100.0, 100.0)) == (100.0, 100.0)
    x, y = latlng_to_pixel(LatLng(11.0, 21.0), center, 1.0, (100.0, 100.0))
    assert x == 100.0 + TILE_PIXELS
    assert y == 100.0 - TILE_PIXELS


def test_bounds_to_rect_spans_one_tile() -> None:
    rect = bounds_to_rect((LatLng(0.0, 0.0), LatLng(1.0, 1.0)), LatLng(0.0, 0.0), 1.0, (100.0, 100.0))

    assert rect == (100, 100 - TILE_PIXELS, TILE_PIXELS, TILE_PIXELS)


def test_pygame_display_tracks_world_without_pygame() -> None:
    display = PygameDisplay(tile_size=1.0, center=NULL_ISLAND)
    world = GameWorld(
        WorldConfig(origin=NULL_ISLAND, tile_size=1.0, visibility_radius=1),
        display=display,
        luck_fn=lambda seed: 0.25 if len(seed) == 3 else (0.0 if tuple(seed) == (1, 0) else 0.99),
    )
    world.start()
    assert sorted(display.rectangles) == ["1:0"]
    assert display.popups["1:0"]().coin_labels == ("1:0#0", "1:0#1", "1:0#2")

    world.move("south")
    world.move("south")

    assert display.rectangles == {}
    assert display.center == LatLng(-2.0, 0.0)


def test_main_honours_headless_environment_flag(monkeypatch) -> None:
    captured = {}

    def fake_run(**kwargs):
        captured.update(kwargs)
        return 0

    monkeypatch.setattr(pygame_viewer, "run_pygame_viewer", fake_run)
    monkeypatch.setenv("GEOCRAWLER_HEADLESS", "yes")

    with pytest.raises(SystemExit) as exc_info:
        pygame_viewer.main(["--store-path", "saves/x.json"])

    assert exc_info.value.code == 0
    assert captured == {"store_path": "saves/x.json", "headless": True}
