from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

from geocrawler.content.schema import validate_cache_payload, validate_player_payload
from geocrawler.sim.board import Board, LatLng
from geocrawler.sim.ledger import CacheMemento, Geocoin
from geocrawler.sim.world import GameWorld, PlayerState

PLAYER_STATE_KEY = "playerState"
CACHE_STATE_KEY = "cacheState"
CANONICAL_JSON_SEPARATORS = (",", ":")
LOG_PREFIX = "[geocrawler.io]"


class KeyValueStore:
    """Durable, synchronous, string-keyed text store."""

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def update(self, records: dict[str, str]) -> None:
        for key in sorted(records):
            self.set(key, records[key])


class MemoryStore(KeyValueStore):
    def __init__(self, records: dict[str, str] | None = None) -> None:
        self.records: dict[str, str] = dict(records or {})
        self.write_count = 0

    def get(self, key: str) -> str | None:
        return self.records.get(key)

    def set(self, key: str, value: str) -> None:
        self.records[key] = value
        self.write_count += 1

    def delete(self, key: str) -> None:
        self.records.pop(key, None)

    def update(self, records: dict[str, str]) -> None:
        self.records.update(records)
        self.write_count += 1


class JsonFileStore(KeyValueStore):
    """All records in one JSON object on disk, rewritten atomically on every change."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._records = self._read_records()

    def get(self, key: str) -> str | None:
        return self._records.get(key)

    def set(self, key: str, value: str) -> None:
        self._records[key] = value
        self._flush()

    def delete(self, key: str) -> None:
        if self._records.pop(key, None) is not None:
            self._flush()

    def update(self, records: dict[str, str]) -> None:
        self._records.update(records)
        self._flush()

    def _read_records(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as exc:
            print(f"{LOG_PREFIX} ignoring unreadable store path={self.path}: {exc}", file=sys.stderr)
            return {}
        if not isinstance(payload, dict):
            print(f"{LOG_PREFIX} ignoring store path={self.path}: top level is not an object", file=sys.stderr)
            return {}
        return {str(key): value for key, value in payload.items() if isinstance(value, str)}

    def _flush(self) -> None:
        _write_atomic_json(self.path, dict(sorted(self._records.items())))


def _write_atomic_json(path: str | Path, payload: dict[str, Any]) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    serialized = json.dumps(payload, indent=2, sort_keys=True)

    temp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=destination.parent,
            delete=False,
            suffix=".tmp",
        ) as temp_file:
            temp_file.write(serialized)
            temp_file.flush()
            os.fsync(temp_file.fileno())
            temp_path = Path(temp_file.name)
        os.replace(temp_path, destination)
    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise


def _canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=CANONICAL_JSON_SEPARATORS)


def _coin_from_payload(row: dict[str, Any], board: Board) -> Geocoin:
    if "cellKey" not in row:
        # Older saves carry only coordinates; they are the origin cell's south-west corner.
        origin = board.cell_for_point(LatLng(lat=float(row["latitude"]), lng=float(row["longitude"])))
        row = {**row, "cellKey": origin.key()}
    return Geocoin.from_dict(row)


def encode_player_state(world: GameWorld) -> str:
    payload = {
        "position": world.player.position.to_dict(),
        "coins": [coin.to_dict(collected=True) for coin in world.ledger.inventory],
        "movementHistory": [point.to_dict() for point in world.player.movement_history],
    }
    return _canonical_json(payload)


def decode_player_state(text: str, board: Board) -> tuple[PlayerState, list[Geocoin]]:
    payload = json.loads(text)
    validate_player_payload(payload)
    player = PlayerState.from_dict(payload)
    coins = [_coin_from_payload(row, board) for row in payload.get("coins", [])]
    if len(set(coins)) != len(coins):
        raise ValueError("playerState.coins holds the same coin twice")
    return player, coins


def encode_cache_state(world: GameWorld) -> str:
    return _canonical_json([world.snapshots[key].to_dict() for key in sorted(world.snapshots)])


def decode_cache_state(text: str, board: Board) -> list[CacheMemento]:
    payload = json.loads(text)
    validate_cache_payload(payload)
    mementos: list[CacheMemento] = []
    seen: set[Geocoin] = set()
    for entry in payload:
        coins = tuple(_coin_from_payload(row, board) for row in entry["coins"])
        for coin in coins:
            if coin in seen:
                raise ValueError(f"coin {coin.label()} appears in more than one cache snapshot")
            seen.add(coin)
        mementos.append(CacheMemento(cell_key=entry["cellKey"], coins=coins))
    return mementos


def save_world_state(store: KeyValueStore, world: GameWorld) -> dict[str, str]:
    records = {
        PLAYER_STATE_KEY: encode_player_state(world),
        CACHE_STATE_KEY: encode_cache_state(world),
    }
    store.update(records)
    return records


def clear_world_state(store: KeyValueStore) -> None:
    store.delete(PLAYER_STATE_KEY)
    store.delete(CACHE_STATE_KEY)


def load_world_state(store: KeyValueStore, world: GameWorld) -> list[str]:
    """Install stored state into ``world``; returns the keys that were discarded.

    A missing key means "no prior state". A malformed record is dropped on its
    own and the other record still loads.
    """
    discarded: list[str] = []
    player: PlayerState | None = None
    inventory: list[Geocoin] | None = None
    snapshots: list[CacheMemento] | None = None

    raw_player = store.get(PLAYER_STATE_KEY)
    if raw_player is not None:
        try:
            player, inventory = decode_player_state(raw_player, world.board)
        except (ValueError, KeyError, TypeError) as exc:
            _report_discarded(PLAYER_STATE_KEY, exc)
            discarded.append(PLAYER_STATE_KEY)

    raw_caches = store.get(CACHE_STATE_KEY)
    if raw_caches is not None:
        try:
            snapshots = decode_cache_state(raw_caches, world.board)
            held = set(inventory or [])
            for memento in snapshots:
                for coin in memento.coins:
                    if coin in held:
                        raise ValueError(f"coin {coin.label()} is both cached and held by the player")
        except (ValueError, KeyError, TypeError) as exc:
            _report_discarded(CACHE_STATE_KEY, exc)
            discarded.append(CACHE_STATE_KEY)
            snapshots = None
            if inventory:
                print(
                    f"{LOG_PREFIX} warning: player holds {len(inventory)} coins while cacheState was discarded; "
                    "their origin caches regenerate with fresh serials and will hold extra coins",
                    file=sys.stderr,
                )

    world.restore_saved_state(player=player, inventory=inventory, snapshots=snapshots)
    return discarded


def _report_discarded(key: str, exc: Exception) -> None:
    print(f"{LOG_PREFIX} discarded malformed {key}: {exc}", file=sys.stderr)
