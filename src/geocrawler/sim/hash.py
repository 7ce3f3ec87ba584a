from __future__ import annotations

import hashlib
import json
from typing import Any

from geocrawler.sim.world import GameWorld


def _canonical_digest(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def world_hash(world: GameWorld) -> str:
    return _canonical_digest(world.to_dict())


def save_hash(records: dict[str, str | None]) -> str:
    """Digest of the raw persisted records, keyed by store key."""
    return _canonical_digest({key: records[key] for key in sorted(records)})
