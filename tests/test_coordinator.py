from pathlib import Path

import pytest

from desktop_shell.core.coordinator import UpdateCoordinator
from desktop_shell.core.errors import StartupErrorCode
from desktop_shell.core.events import EventBus, LifecycleEvent
from desktop_shell.core.local_server import LocalServer
from desktop_shell.core.modules import ModuleRegistry


class FakeAutoupdate:
    def __init__(self, calls):
        self.calls = calls

    def get_directory(self):
        return Path("/bundle/v2")

    def get_parent_directory(self):
        return Path("/bundle/v1")

    def get_pending_version(self):
        return "v2"

    def on_reset(self):
        self.calls.append(("reset",))


class FakeServer(LocalServer):
    def __init__(self, calls, port=8035, fail=False, explode=False):
        super().__init__()
        self.calls = calls
        self.next_port = port
        self.fail = fail
        self.explode = explode

    def init(self, current_dir, parent_dir=None, restart=False):
        self.calls.append(("restart", str(current_dir), str(parent_dir), restart))
        if self.explode:
            raise RuntimeError("boom")
        if self.fail:
            self.on_startup_failed(StartupErrorCode.NO_FREE_PORT)
            return None
        self.on_server_restarted(self.next_port)
        return self.next_port


def _setup(autoupdate_cls=None, **server_kwargs):
    calls = []
    events = EventBus()
    registry = ModuleRegistry()
    autoupdate = (autoupdate_cls or FakeAutoupdate)(calls)
    autoupdate.events = events
    registry.register("autoupdate", autoupdate)
    server = FakeServer(calls, **server_kwargs)
    server.set_callbacks(
        lambda code: calls.append(("failed", code)),
        lambda port: calls.append(("ready", port)),
        lambda port: calls.append(("navigate", f"http://127.0.0.1:{port}/")),
    )
    registry.register("localServer", server)
    events.subscribe(LifecycleEvent.BEFORE_RELOAD, lambda version: calls.append(("notify", version)))
    return UpdateCoordinator(events, registry), events, calls


def test_navigation_without_pending_update_is_dropped():
    coordinator, _, calls = _setup()
    assert coordinator.will_navigate("http://127.0.0.1:3000/page") is False
    assert calls == []


def test_pending_update_runs_full_sequence_in_order():
    coordinator, events, calls = _setup()
    events.publish(LifecycleEvent.NEW_VERSION_READY, "v2")
    assert coordinator.new_version_ready is True

    assert coordinator.will_navigate("http://127.0.0.1:3000/") is True
    assert calls == [
        ("notify", "v2"),
        ("reset",),
        ("restart", str(Path("/bundle/v2")), str(Path("/bundle/v1")), True),
        ("navigate", "http://127.0.0.1:8035/"),
    ]
    assert coordinator.new_version_ready is False


def test_flag_cleared_after_failed_restart():
    coordinator, events, calls = _setup(fail=True)
    events.publish(LifecycleEvent.NEW_VERSION_READY, "v2")

    assert coordinator.will_navigate() is False
    assert ("failed", StartupErrorCode.NO_FREE_PORT) in calls
    assert coordinator.new_version_ready is False


def test_flag_cleared_when_restart_raises():
    coordinator, events, _ = _setup(explode=True)
    events.publish(LifecycleEvent.NEW_VERSION_READY, "v2")

    with pytest.raises(RuntimeError):
        coordinator.will_navigate()
    assert coordinator.new_version_ready is False


def test_update_applies_only_on_next_navigation():
    coordinator, events, calls = _setup()
    coordinator.will_navigate()
    events.publish(LifecycleEvent.NEW_VERSION_READY, "v2")
    assert calls == []

    coordinator.will_navigate()
    assert [c[0] for c in calls] == ["notify", "reset", "restart", "navigate"]

    calls.clear()
    coordinator.will_navigate()
    assert calls == []


class ChainedAutoupdate(FakeAutoupdate):
    """Announces the next version while the current one is being applied."""

    def on_reset(self):
        super().on_reset()
        self.events.publish(LifecycleEvent.NEW_VERSION_READY, "v3")


def test_version_announced_during_reset_stays_pending():
    coordinator, events, calls = _setup(ChainedAutoupdate)
    events.publish(LifecycleEvent.NEW_VERSION_READY, "v2")

    assert coordinator.will_navigate() is True
    assert coordinator.new_version_ready is True

    calls.clear()
    assert coordinator.will_navigate() is True
    assert [c[0] for c in calls] == ["notify", "reset", "restart", "navigate"]
