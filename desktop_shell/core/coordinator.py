# desktop_shell/core/coordinator.py
"""
Desktop Shell – hot code push coordination
==========================================

Every in-page navigation attempt ends up in `will_navigate()` (the window
has already suppressed it).  Without a pending update nothing happens –
the page's own router is in charge.  With one pending:

    BEFORE_RELOAD(version) → autoupdate.on_reset() → localServer restart

and the local server's `on_server_restarted(port)` callback points the
window at the new port.  The pending flag is consumed at the start of
every attempt, so an update that lands later (even during the reset)
waits for the next navigation.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from desktop_shell.core.bundles import Autoupdate
from desktop_shell.core.events import EventBus, LifecycleEvent
from desktop_shell.core.local_server import LocalServer
from desktop_shell.core.modules import ModuleRegistry


class UpdateCoordinator:
    def __init__(
        self,
        events: EventBus,
        registry: ModuleRegistry,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.events = events
        self.registry = registry
        self.log = log or logging.getLogger("desktop_shell.hcp")
        self.new_version_ready = False
        self._lock = threading.Lock()           # one navigation at a time
        self._flag_lock = threading.Lock()
        events.subscribe(LifecycleEvent.NEW_VERSION_READY, self._on_new_version_ready)

    def _on_new_version_ready(self, *_version) -> None:
        with self._flag_lock:
            self.new_version_ready = True

    def _take_flag(self) -> bool:
        with self._flag_lock:
            ready, self.new_version_ready = self.new_version_ready, False
        return ready

    def will_navigate(self, url: str = "") -> bool:
        """
        Handle one intercepted navigation. True when a new bundle went live.

        The flag is consumed on entry; a version announced while this
        attempt runs stays pending for the next navigation.
        """
        with self._lock:
            if not self._take_flag():
                self.log.debug("navigation to %s dropped", url)
                return False
            return self._apply_update()

    def _apply_update(self) -> bool:
        autoupdate = self.registry.require("autoupdate", Autoupdate)
        local_server = self.registry.require("localServer", LocalServer)

        version = autoupdate.get_pending_version()
        self.log.info("applying bundle %s", version)
        self.events.publish(LifecycleEvent.BEFORE_RELOAD, version)

        autoupdate.on_reset()

        port = local_server.init(
            autoupdate.get_directory(),
            autoupdate.get_parent_directory(),
            restart=True,
        )
        return port is not None
