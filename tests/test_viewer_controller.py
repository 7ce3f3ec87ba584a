import json
from pathlib import Path

from geocrawler.cli.viewer import OUTCOME_MESSAGES, RESET_PROMPT, AsciiViewer, GameController, open_world, run_text_session
from geocrawler.content.io import CACHE_STATE_KEY, PLAYER_STATE_KEY, MemoryStore
from geocrawler.sim.board import DEFAULT_ORIGIN, NULL_ISLAND
from geocrawler.sim.hash import save_hash
from geocrawler.sim.world import GameWorld, WorldConfig

SMALL_CONFIG = WorldConfig(origin=NULL_ISLAND, tile_size=1.0, visibility_radius=1)


def _build_controller() -> tuple[GameWorld, GameController]:
    world = GameWorld(SMALL_CONFIG, luck_fn=lambda seed: 0.25 if len(seed) == 3 else 0.0)
    world.start()
    return world, GameController(world)


def _scripted_input(lines: list[str]):
    remaining = list(lines)

    def input_fn(_prompt: str) -> str:
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    return input_fn


def _saved_player(path: Path) -> dict:
    records = json.loads(path.read_text(encoding="utf-8"))
    return json.loads(records[PLAYER_STATE_KEY])


def test_controller_drops_commands_issued_while_busy() -> None:
    world, controller = _build_controller()
    nested: list[object] = []
    world.subscribe(lambda _world, _change: nested.append(controller.move("east")))

    outcome = controller.move("north")

    assert outcome is not None and outcome.applied
    assert nested == [None]
    assert world.current_cell().key() == "1:0"


def test_controller_reports_rejections_in_plain_words() -> None:
    _, controller = _build_controller()

    controller.deposit()
    assert controller.status_message == OUTCOME_MESSAGES["nothing_to_deposit"] == "No coins to deposit!"

    controller.collect("0:0", "0:0#0")
    assert controller.status_message is None

    controller.collect("9:9", "9:9#0")
    assert controller.status_message == OUTCOME_MESSAGES["unknown_cache"]


def test_controller_deposit_defaults_to_current_cell() -> None:
    world, controller = _build_controller()
    controller.collect("1:1", "1:1#0")

    outcome = controller.deposit()

    assert outcome is not None and outcome.details["cache"] == "0:0"
    assert world.ledger.coins_at("0:0")[-1].label() == "1:1#0"


def test_controller_reset_asks_for_confirmation() -> None:
    world, controller = _build_controller()
    controller.move("north")
    prompts: list[str] = []

    controller.reset_game(lambda prompt: prompts.append(prompt) or False)
    assert controller.status_message == "Reset cancelled."
    assert world.player.movement_history != []

    outcome = controller.reset_game(lambda prompt: True)
    assert outcome is not None and outcome.applied
    assert prompts == [RESET_PROMPT]
    assert world.player.movement_history == []


def test_controller_without_tracker_reports_missing_sensor() -> None:
    _, controller = _build_controller()

    assert controller.toggle_sensor_tracking() is False
    assert controller.status_message == "No position sensor available."


def test_ascii_viewer_lists_score_and_caches() -> None:
    world, controller = _build_controller()
    controller.collect("0:0", "0:0#2")

    text = AsciiViewer().render(world)

    assert "Points: 1" in text
    assert "Caches in range: 9" in text
    assert " *[0:0] at 0.00000:0.00000 (generated): 0:0#0 0:0#1" in text


def test_open_world_logs_discarded_records(capsys) -> None:
    store = MemoryStore({PLAYER_STATE_KEY: "[]"})

    world = open_world(store, SMALL_CONFIG)

    captured = capsys.readouterr()
    assert "[geocrawler.viewer] started with fresh defaults for: playerState" in captured.err
    assert "[geocrawler.viewer] loaded score=0" in captured.out
    assert world.player.position == NULL_ISLAND
    assert store.write_count == 1


def test_text_session_moves_and_saves_on_exit(tmp_path: Path, capsys) -> None:
    path = tmp_path / "store.json"

    result = run_text_session(path, WorldConfig(visibility_radius=1), input_fn=_scripted_input(["n", "show", "dance", "quit"]))

    assert result == 0
    output = capsys.readouterr().out
    assert "Points: 0" in output
    assert "unknown command" in output
    player = _saved_player(path)
    assert len(player["movementHistory"]) == 1
    assert player["position"]["lat"] > DEFAULT_ORIGIN.lat
    records = json.loads(path.read_text(encoding="utf-8"))
    digest = save_hash({key: records[key] for key in (PLAYER_STATE_KEY, CACHE_STATE_KEY)})
    assert f"save_hash={digest}" in output


def test_text_session_reset_requires_yes(tmp_path: Path) -> None:
    path = tmp_path / "store.json"

    run_text_session(path, WorldConfig(visibility_radius=1), input_fn=_scripted_input(["n", "reset", "n", "e"]))
    assert len(_saved_player(path)["movementHistory"]) == 2

    run_text_session(path, WorldConfig(visibility_radius=1), input_fn=_scripted_input(["reset", "y"]))
    player = _saved_player(path)
    assert player["movementHistory"] == []
    assert player["position"] == DEFAULT_ORIGIN.to_dict()


def test_text_session_feeds_scripted_fixes_while_tracking(tmp_path: Path, capsys) -> None:
    path = tmp_path / "store.json"

    run_text_session(
        path,
        WorldConfig(visibility_radius=1),
        input_fn=_scripted_input(["fix a b", "track", "fix 36.9901 -122.0630", "track"]),
    )

    output = capsys.readouterr().out
    assert "fix expects two numbers" in output
    assert "sensor tracking on" in output
    assert "sensor tracking off" in output
    assert _saved_player(path)["position"] == {"lat": 36.9901, "lng": -122.063}
