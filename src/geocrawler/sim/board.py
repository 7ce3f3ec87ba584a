from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

TILE_DEGREES = 1e-4
DEFAULT_VISIBILITY_RADIUS = 8
GRID_SNAP_DIGITS = 9


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LatLng":
        if not isinstance(data, dict):
            raise ValueError("position must be an object")
        lat = data.get("lat")
        lng = data.get("lng")
        for name, value in (("lat", lat), ("lng", lng)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"position.{name} must be numeric")
            if not math.isfinite(value):
                raise ValueError(f"position.{name} must be finite")
        return cls(lat=float(lat), lng=float(lng))


# Oakes College classroom.
DEFAULT_ORIGIN = LatLng(36.98949379578401, -122.06277128548504)
NULL_ISLAND = LatLng(0.0, 0.0)


@dataclass(frozen=True, order=True)
class Cell:
    """Grid cell (i, j) relative to a fixed origin; i runs north, j east."""

    i: int
    j: int

    def key(self) -> str:
        return f"{self.i}:{self.j}"

    def to_dict(self) -> dict[str, int]:
        return {"i": self.i, "j": self.j}

    @classmethod
    def from_key(cls, key: str) -> "Cell":
        if not isinstance(key, str):
            raise ValueError("cell key must be a string")
        parts = key.split(":")
        if len(parts) != 2:
            raise ValueError(f"invalid cell key: {key!r}")
        try:
            return cls(i=int(parts[0]), j=int(parts[1]))
        except ValueError:
            raise ValueError(f"invalid cell key: {key!r}") from None


def _require_tile_size(tile_size: float) -> float:
    if isinstance(tile_size, bool) or not isinstance(tile_size, (int, float)) or tile_size <= 0:
        raise ValueError("tile_size must be a positive number")
    return float(tile_size)


def _grid_index(offset: float, size: float) -> int:
    # Positions stepped in whole tiles sit on boundaries; absorb float noise there.
    return math.floor(round(offset / size, GRID_SNAP_DIGITS))


def cell_at(position: LatLng, tile_size: float, origin: LatLng = NULL_ISLAND) -> Cell:
    size = _require_tile_size(tile_size)
    return Cell(
        i=_grid_index(position.lat - origin.lat, size),
        j=_grid_index(position.lng - origin.lng, size),
    )


def cell_southwest(cell: Cell, tile_size: float, origin: LatLng = NULL_ISLAND) -> LatLng:
    size = _require_tile_size(tile_size)
    return LatLng(lat=origin.lat + cell.i * size, lng=origin.lng + cell.j * size)


def cell_bounds(cell: Cell, tile_size: float, origin: LatLng = NULL_ISLAND) -> tuple[LatLng, LatLng]:
    southwest = cell_southwest(cell, tile_size, origin)
    size = float(tile_size)
    return southwest, LatLng(lat=southwest.lat + size, lng=southwest.lng + size)


class Board:
    """Flyweight registry: every (i, j) resolves to one shared Cell instance."""

    def __init__(
        self,
        tile_size: float = TILE_DEGREES,
        visibility_radius: int = DEFAULT_VISIBILITY_RADIUS,
        origin: LatLng = NULL_ISLAND,
    ) -> None:
        self.tile_size = _require_tile_size(tile_size)
        if isinstance(visibility_radius, bool) or not isinstance(visibility_radius, int) or visibility_radius < 0:
            raise ValueError("visibility_radius must be a non-negative integer")
        self.visibility_radius = visibility_radius
        self.origin = origin
        self._known_cells: dict[str, Cell] = {}

    def canonical(self, cell: Cell) -> Cell:
        return self._known_cells.setdefault(cell.key(), cell)

    def cell_for_key(self, key: str) -> Cell:
        known = self._known_cells.get(key)
        if known is not None:
            return known
        return self.canonical(Cell.from_key(key))

    def cell_for_point(self, point: LatLng) -> Cell:
        return self.canonical(cell_at(point, self.tile_size, self.origin))

    def cells_near_point(self, point: LatLng, radius: int | None = None) -> list[Cell]:
        if radius is None:
            radius = self.visibility_radius
        if radius < 0:
            raise ValueError("radius must be >= 0")
        center = self.cell_for_point(point)
        cells: list[Cell] = []
        for di in range(-radius, radius + 1):
            for dj in range(-radius, radius + 1):
                cells.append(self.canonical(Cell(center.i + di, center.j + dj)))
        return cells

    def southwest(self, cell: Cell) -> LatLng:
        return cell_southwest(cell, self.tile_size, self.origin)

    def bounds(self, cell: Cell) -> tuple[LatLng, LatLng]:
        return cell_bounds(cell, self.tile_size, self.origin)

    def known_cell_count(self) -> int:
        return len(self._known_cells)
