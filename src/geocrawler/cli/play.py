from __future__ import annotations

import argparse
import sys
from typing import Sequence

from geocrawler.cli.pygame_viewer import DEFAULT_STORE_PATH, run_pygame_viewer
from geocrawler.cli.viewer import run_text_session
from geocrawler.sim.board import DEFAULT_VISIBILITY_RADIUS
from geocrawler.sim.world import AUTOSAVE_INTERVAL_SECONDS, CACHE_SPAWN_PROBABILITY, WorldConfig


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python play.py", description="Geocrawler launcher.")
    parser.add_argument("--store-path", default=DEFAULT_STORE_PATH, help="JSON file backing the persistent store.")
    parser.add_argument("--radius", type=int, default=DEFAULT_VISIBILITY_RADIUS, help="Visibility radius in cells.")
    parser.add_argument(
        "--spawn-probability",
        type=float,
        default=CACHE_SPAWN_PROBABILITY,
        help="Chance that any given cell holds a cache.",
    )
    parser.add_argument(
        "--autosave-seconds",
        type=float,
        default=AUTOSAVE_INTERVAL_SECONDS,
        help="Interval of the unconditional periodic save.",
    )
    parser.add_argument("--text", action="store_true", help="Play in the terminal instead of the pygame window.")
    parser.add_argument("--headless", action="store_true", help="Run startup path in headless mode.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        config = WorldConfig(
            visibility_radius=args.radius,
            spawn_probability=args.spawn_probability,
            autosave_interval_seconds=args.autosave_seconds,
        )
    except ValueError as exc:
        print(f"[geocrawler.play] invalid configuration: {exc}", file=sys.stderr)
        return 2
    if args.text:
        return run_text_session(args.store_path, config)
    return run_pygame_viewer(store_path=args.store_path, config=config, headless=args.headless)


if __name__ == "__main__":
    raise SystemExit(main())
