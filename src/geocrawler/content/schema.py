from __future__ import annotations

import math
from typing import Any

REQUIRED_COIN_FIELDS = {"latitude", "longitude", "serial", "collected"}


def _require_finite_number(value: Any, *, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be numeric")
    if not math.isfinite(value):
        raise ValueError(f"{field_name} must be finite")


def _validate_latlng(value: Any, *, field_name: str) -> None:
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be an object")
    for axis in ("lat", "lng"):
        if axis not in value:
            raise ValueError(f"{field_name} missing {axis}")
        _require_finite_number(value[axis], field_name=f"{field_name}.{axis}")


def _validate_cell_key(value: Any, *, field_name: str) -> None:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")
    parts = value.split(":")
    if len(parts) != 2 or not all(part.lstrip("-").isdigit() for part in parts):
        raise ValueError(f"{field_name} must look like 'i:j'")


def _validate_coin(value: Any, *, field_name: str) -> None:
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be an object")
    missing = REQUIRED_COIN_FIELDS - set(value.keys())
    if missing:
        raise ValueError(f"{field_name} missing fields: {sorted(missing)}")
    _require_finite_number(value["latitude"], field_name=f"{field_name}.latitude")
    _require_finite_number(value["longitude"], field_name=f"{field_name}.longitude")
    serial = value["serial"]
    if isinstance(serial, bool) or not isinstance(serial, int) or serial < 0:
        raise ValueError(f"{field_name}.serial must be a non-negative integer")
    if not isinstance(value["collected"], bool):
        raise ValueError(f"{field_name}.collected must be a boolean")
    if "cellKey" in value:
        _validate_cell_key(value["cellKey"], field_name=f"{field_name}.cellKey")


def validate_player_payload(payload: Any) -> None:
    if not isinstance(payload, dict):
        raise ValueError("playerState must be an object")
    _validate_latlng(payload.get("position"), field_name="playerState.position")

    coins = payload.get("coins", [])
    if not isinstance(coins, list):
        raise ValueError("playerState.coins must be a list")
    for index, coin in enumerate(coins):
        _validate_coin(coin, field_name=f"playerState.coins[{index}]")
        if coin["collected"] is not True:
            raise ValueError(f"playerState.coins[{index}] held by the player must be collected")

    history = payload.get("movementHistory", [])
    if not isinstance(history, list):
        raise ValueError("playerState.movementHistory must be a list")
    for index, point in enumerate(history):
        _validate_latlng(point, field_name=f"playerState.movementHistory[{index}]")


def validate_cache_payload(payload: Any) -> None:
    if not isinstance(payload, list):
        raise ValueError("cacheState must be a list")
    seen_keys: set[str] = set()
    for index, entry in enumerate(payload):
        field_name = f"cacheState[{index}]"
        if not isinstance(entry, dict):
            raise ValueError(f"{field_name} must be an object")
        if "cellKey" not in entry or "coins" not in entry:
            raise ValueError(f"{field_name} missing cellKey or coins")
        _validate_cell_key(entry["cellKey"], field_name=f"{field_name}.cellKey")
        if entry["cellKey"] in seen_keys:
            raise ValueError(f"duplicate cache snapshot for cell {entry['cellKey']}")
        seen_keys.add(entry["cellKey"])
        coins = entry["coins"]
        if not isinstance(coins, list):
            raise ValueError(f"{field_name}.coins must be a list")
        for coin_index, coin in enumerate(coins):
            _validate_coin(coin, field_name=f"{field_name}.coins[{coin_index}]")
            if coin["collected"] is not False:
                raise ValueError(f"{field_name}.coins[{coin_index}] inside a cache must not be collected")
