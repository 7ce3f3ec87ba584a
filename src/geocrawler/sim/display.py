from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from geocrawler.sim.board import LatLng


@dataclass(frozen=True)
class CachePopup:
    cache_key: str
    southwest_label: str
    coin_labels: tuple[str, ...]
    can_deposit: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "cache_key": self.cache_key,
            "southwest_label": self.southwest_label,
            "coin_labels": list(self.coin_labels),
            "can_deposit": self.can_deposit,
        }


PopupProducer = Callable[[], CachePopup]


class DisplaySurface:
    """Write-only map surface driven by the world.

    The world never reads state back from a surface; subclasses render what
    they are told and nothing more.
    """

    def draw_cache(self, cache_key: str, bounds: tuple[LatLng, LatLng], popup: PopupProducer) -> None:
        """Called when a cache becomes materialized within the visibility radius."""

    def clear_cache(self, cache_key: str) -> None:
        """Called when a materialized cache leaves the visibility radius."""

    def pan_to(self, point: LatLng) -> None:
        """Called after every player movement to recenter the surface."""


@dataclass
class RecordingDisplay(DisplaySurface):
    """Display surface that only remembers what it was asked to show."""

    rectangles: dict[str, tuple[LatLng, LatLng]] = field(default_factory=dict)
    popups: dict[str, PopupProducer] = field(default_factory=dict)
    centers: list[LatLng] = field(default_factory=list)

    def draw_cache(self, cache_key: str, bounds: tuple[LatLng, LatLng], popup: PopupProducer) -> None:
        self.rectangles[cache_key] = bounds
        self.popups[cache_key] = popup

    def clear_cache(self, cache_key: str) -> None:
        self.rectangles.pop(cache_key, None)
        self.popups.pop(cache_key, None)

    def pan_to(self, point: LatLng) -> None:
        self.centers.append(point)

    def open_popup(self, cache_key: str) -> CachePopup:
        return self.popups[cache_key]()
