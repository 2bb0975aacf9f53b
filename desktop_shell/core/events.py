# desktop_shell/core/events.py
"""
Desktop Shell – lifecycle events
================================

A typed set of events and a small broadcast bus.  Collaborators subscribe
at composition time; handlers run synchronously, in subscription order,
on the publishing thread.  A failing handler propagates to the publisher.
"""

from __future__ import annotations

import enum
import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List


class LifecycleEvent(str, enum.Enum):
    BEFORE_MODULES_LOAD = "beforeModulesLoad"
    BEFORE_DESKTOP_LOADED = "beforeDesktopLoaded"
    DESKTOP_LOADED = "desktopLoaded"
    WINDOW_OPENED = "windowOpened"
    NEW_VERSION_READY = "newVersionReady"
    BEFORE_RELOAD = "beforeReload"
    BEFORE_LOADING_FINISHED = "beforeLoadingFinished"
    LOADING_FINISHED = "loadingFinished"
    STARTUP_FAILED = "startupFailed"
    UNHANDLED_EXCEPTION = "unhandledException"


Handler = Callable[..., Any]


class EventBus:
    def __init__(self) -> None:
        self._handlers: DefaultDict[LifecycleEvent, List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event: LifecycleEvent, handler: Handler) -> None:
        with self._lock:
            self._handlers[LifecycleEvent(event)].append(handler)

    def unsubscribe(self, event: LifecycleEvent, handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(LifecycleEvent(event), [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: LifecycleEvent, *payload: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.get(LifecycleEvent(event), ()))
        for handler in handlers:
            handler(*payload)
