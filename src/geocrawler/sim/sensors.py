from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from geocrawler.sim.board import LatLng

if TYPE_CHECKING:
    from geocrawler.sim.world import GameWorld

DEFAULT_WATCH_OPTIONS: dict[str, Any] = {"enableHighAccuracy": True, "maximumAge": 0, "timeout": 10_000}


@dataclass(frozen=True)
class GeoFix:
    latitude: float
    longitude: float

    def to_latlng(self) -> LatLng:
        return LatLng(lat=self.latitude, lng=self.longitude)


@dataclass(frozen=True)
class GeolocationError:
    message: str


FixCallback = Callable[[GeoFix], None]
ErrorCallback = Callable[[GeolocationError], None]


class GeolocationSource:
    """Position sensor substrate; concrete sources deliver fixes via callbacks."""

    def subscribe(self, on_fix: FixCallback, on_error: ErrorCallback, options: dict[str, Any]) -> int:
        raise NotImplementedError

    def unsubscribe(self, handle: int) -> None:
        raise NotImplementedError


@dataclass
class ScriptedGeolocationSource(GeolocationSource):
    """Replays queued fixes and errors on ``pump``; deterministic stand-in for a device."""

    queued: deque[GeoFix | GeolocationError] = field(default_factory=deque)
    _subscribers: dict[int, tuple[FixCallback, ErrorCallback]] = field(default_factory=dict)
    _next_handle: int = 1

    def push(self, reading: GeoFix | GeolocationError) -> None:
        self.queued.append(reading)

    def subscribe(self, on_fix: FixCallback, on_error: ErrorCallback, options: dict[str, Any]) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._subscribers[handle] = (on_fix, on_error)
        return handle

    def unsubscribe(self, handle: int) -> None:
        self._subscribers.pop(handle, None)

    def active_subscriptions(self) -> int:
        return len(self._subscribers)

    def pump(self) -> int:
        delivered = 0
        while self.queued and self._subscribers:
            reading = self.queued.popleft()
            for handle in sorted(self._subscribers):
                subscriber = self._subscribers.get(handle)
                if subscriber is None:
                    continue
                on_fix, on_error = subscriber
                if isinstance(reading, GeolocationError):
                    on_error(reading)
                else:
                    on_fix(reading)
            delivered += 1
        return delivered


class SensorTracker:
    """User-toggled geolocation watch feeding absolute fixes into the world."""

    def __init__(
        self,
        world: GameWorld,
        source: GeolocationSource,
        *,
        on_status: Callable[[str], None] | None = None,
        options: dict[str, Any] | None = None,
    ) -> None:
        self.world = world
        self.source = source
        self.on_status = on_status
        self.options = dict(DEFAULT_WATCH_OPTIONS if options is None else options)
        self._handle: int | None = None
        self._failed_during_subscribe = False

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        if self._handle is not None:
            return
        self._failed_during_subscribe = False
        handle = self.source.subscribe(self._on_fix, self._on_error, self.options)
        if self._failed_during_subscribe:
            self.source.unsubscribe(handle)
            return
        self._handle = handle
        self._report("sensor tracking on")

    def stop(self) -> None:
        if self._handle is None:
            return
        self.source.unsubscribe(self._handle)
        self._handle = None
        self._report("sensor tracking off")

    def toggle(self) -> bool:
        if self.active:
            self.stop()
        else:
            self.start()
        return self.active

    def _on_fix(self, fix: GeoFix) -> None:
        if self._handle is None:
            return
        self.world.move_to(fix.to_latlng())

    def _on_error(self, error: GeolocationError) -> None:
        if self._handle is None:
            self._failed_during_subscribe = True
        self.stop()
        self._report(f"geolocation unavailable: {error.message}")

    def _report(self, message: str) -> None:
        if self.on_status is not None:
            self.on_status(message)


class UnavailableGeolocationSource(ScriptedGeolocationSource):
    """Host without a position sensor: every subscription fails on the next pump."""

    def subscribe(self, on_fix: FixCallback, on_error: ErrorCallback, options: dict[str, Any]) -> int:
        handle = super().subscribe(on_fix, on_error, options)
        self.push(GeolocationError("no position sensor on this host"))
        return handle
