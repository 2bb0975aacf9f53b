import pytest

from desktop_shell.core.events import EventBus, LifecycleEvent


def test_handlers_run_in_subscription_order():
    bus = EventBus()
    seen = []
    bus.subscribe(LifecycleEvent.BEFORE_RELOAD, lambda v: seen.append(("a", v)))
    bus.subscribe(LifecycleEvent.BEFORE_RELOAD, lambda v: seen.append(("b", v)))
    bus.subscribe(LifecycleEvent.LOADING_FINISHED, lambda: seen.append(("other",)))

    bus.publish(LifecycleEvent.BEFORE_RELOAD, "1.2.0")
    assert seen == [("a", "1.2.0"), ("b", "1.2.0")]


def test_event_names_are_accepted():
    bus = EventBus()
    seen = []
    bus.subscribe("newVersionReady", seen.append)
    bus.publish(LifecycleEvent.NEW_VERSION_READY, "2.0")
    assert seen == ["2.0"]


def test_unsubscribe():
    bus = EventBus()
    seen = []
    bus.subscribe(LifecycleEvent.WINDOW_OPENED, seen.append)
    bus.unsubscribe(LifecycleEvent.WINDOW_OPENED, seen.append)
    bus.publish(LifecycleEvent.WINDOW_OPENED, object())
    assert seen == []


def test_handler_errors_reach_the_publisher():
    bus = EventBus()

    def broken():
        raise ValueError("nope")

    bus.subscribe(LifecycleEvent.STARTUP_FAILED, broken)
    with pytest.raises(ValueError):
        bus.publish(LifecycleEvent.STARTUP_FAILED)


def test_unknown_event_is_rejected():
    with pytest.raises(ValueError):
        EventBus().subscribe("noSuchEvent", print)
