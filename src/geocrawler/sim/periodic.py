from __future__ import annotations

from collections.abc import Callable

AUTOSAVE_TASK_NAME = "autosave"


class PeriodicScheduler:
    """Wall-clock periodic tasks driven by the host loop's elapsed time.

    Nothing runs in the background: the owner calls ``advance`` from its
    event loop and due callbacks fire synchronously, in registration order.
    """

    def __init__(self) -> None:
        self._task_intervals: dict[str, float] = {}
        self._task_elapsed: dict[str, float] = {}
        self._registration_order: list[str] = []
        self._callbacks: dict[str, Callable[[str], None]] = {}

    def register_task(self, *, task_name: str, interval_seconds: float, callback: Callable[[str], None]) -> None:
        if not task_name:
            raise ValueError("task_name must be a non-empty string")
        if isinstance(interval_seconds, bool) or not isinstance(interval_seconds, (int, float)) or interval_seconds <= 0:
            raise ValueError("interval_seconds must be a positive number")

        existing_interval = self._task_intervals.get(task_name)
        if existing_interval is not None and existing_interval != interval_seconds:
            raise ValueError(
                f"periodic task {task_name!r} already registered with interval "
                f"{existing_interval}; got {interval_seconds}"
            )
        if existing_interval is None:
            self._task_intervals[task_name] = float(interval_seconds)
            self._task_elapsed[task_name] = 0.0
            self._registration_order.append(task_name)
        self._callbacks[task_name] = callback

    def unregister_task(self, task_name: str) -> bool:
        if task_name not in self._task_intervals:
            return False
        del self._task_intervals[task_name]
        del self._task_elapsed[task_name]
        self._callbacks.pop(task_name, None)
        self._registration_order.remove(task_name)
        return True

    def task_names(self) -> tuple[str, ...]:
        return tuple(self._registration_order)

    def advance(self, elapsed_seconds: float) -> list[str]:
        if elapsed_seconds < 0:
            raise ValueError("elapsed_seconds must be >= 0")
        fired: list[str] = []
        for task_name in list(self._registration_order):
            interval = self._task_intervals.get(task_name)
            if interval is None:
                continue
            elapsed = self._task_elapsed[task_name] + elapsed_seconds
            # A long stall fires a task once, not once per missed interval.
            due = elapsed >= interval
            self._task_elapsed[task_name] = elapsed % interval if due else elapsed
            if due:
                fired.append(task_name)
                self._callbacks[task_name](task_name)
        return fired
