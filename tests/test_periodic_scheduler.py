import pytest

from geocrawler.sim.periodic import AUTOSAVE_TASK_NAME, PeriodicScheduler


def test_periodic_fires_once_interval_has_elapsed() -> None:
    scheduler = PeriodicScheduler()
    observed: list[str] = []
    scheduler.register_task(task_name=AUTOSAVE_TASK_NAME, interval_seconds=10, callback=observed.append)

    assert scheduler.advance(4.0) == []
    assert scheduler.advance(6.0) == [AUTOSAVE_TASK_NAME]
    assert scheduler.advance(9.0) == []
    assert scheduler.advance(1.0) == [AUTOSAVE_TASK_NAME]
    assert observed == [AUTOSAVE_TASK_NAME, AUTOSAVE_TASK_NAME]


def test_periodic_long_stall_fires_once() -> None:
    scheduler = PeriodicScheduler()
    observed: list[str] = []
    scheduler.register_task(task_name="t", interval_seconds=2, callback=observed.append)

    scheduler.advance(7.0)
    assert observed == ["t"]
    scheduler.advance(1.0)
    assert observed == ["t", "t"]


def test_periodic_ordering_follows_registration() -> None:
    scheduler = PeriodicScheduler()
    observed: list[str] = []
    scheduler.register_task(task_name="b", interval_seconds=1, callback=observed.append)
    scheduler.register_task(task_name="a", interval_seconds=1, callback=observed.append)

    scheduler.advance(1.0)

    assert observed == ["b", "a"]
    assert scheduler.task_names() == ("b", "a")


def test_periodic_rejects_conflicting_interval() -> None:
    scheduler = PeriodicScheduler()
    scheduler.register_task(task_name="t", interval_seconds=1, callback=lambda _name: None)
    scheduler.register_task(task_name="t", interval_seconds=1, callback=lambda _name: None)

    with pytest.raises(ValueError, match="already registered"):
        scheduler.register_task(task_name="t", interval_seconds=2, callback=lambda _name: None)
    with pytest.raises(ValueError):
        scheduler.register_task(task_name="u", interval_seconds=0, callback=lambda _name: None)
    with pytest.raises(ValueError):
        scheduler.advance(-1.0)


def test_periodic_task_can_unregister_itself() -> None:
    scheduler = PeriodicScheduler()
    observed: list[str] = []

    def once(task_name: str) -> None:
        observed.append(task_name)
        scheduler.unregister_task(task_name)

    scheduler.register_task(task_name="once", interval_seconds=1, callback=once)

    scheduler.advance(1.0)
    scheduler.advance(1.0)

    assert observed == ["once"]
    assert scheduler.task_names() == ()
    assert scheduler.unregister_task("once") is False
