# desktop_shell/core/local_server.py
"""
Desktop Shell – local HTTP server lifecycle
===========================================

Owns the single live *session*: loopback socket + uvicorn server thread +
asset pipeline bound to one BundleLocation.

Public API
----------
• set_callbacks(on_startup_failed, on_server_ready, on_server_restarted)
• init(current_dir, parent_dir=None, restart=False) -> port | None
• restart(current_dir, parent_dir=None)              -> port | None
• stop()

States:  uninitialized → starting → serving → (restarting → starting →
serving)* → stopped.  `starting → failed` is reported through
`on_startup_failed(code)` and never retried here.

The previous session is always torn down *before* the next one binds,
so there is never more than one listener; restarts are serialized with
a lock and the port of the previous session is never handed out again
by the very next start.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

import uvicorn
from fastapi import FastAPI

from desktop_shell.core import ports
from desktop_shell.core.errors import ListenFailure, StartupError, StartupErrorCode
from desktop_shell.core.models import BundleLocation, ServerSettings, ServerState
from desktop_shell.core.pipeline import build_app

PathLike = Union[str, Path]
_STARTUP_TIMEOUT = 5.0
_SHUTDOWN_TIMEOUT = 5.0


@dataclass
class ServerSession:
    port: int
    listener: socket.socket
    server: uvicorn.Server
    thread: threading.Thread
    app: FastAPI
    bundle: BundleLocation


class LocalServer:
    """Simple local HTTP server tailored for a single-page app bundle."""

    def __init__(
        self,
        log: Optional[logging.Logger] = None,
        settings: Optional[ServerSettings] = None,
    ) -> None:
        self.log = log or logging.getLogger("desktop_shell.localServer")
        self.settings = settings or ServerSettings()
        self.state = ServerState.uninitialized
        self.session: Optional[ServerSession] = None
        self._lock = threading.RLock()
        self._cold_started = False

        self.on_startup_failed: Optional[Callable[[StartupErrorCode], None]] = None
        self.on_server_ready: Optional[Callable[[int], None]] = None
        self.on_server_restarted: Optional[Callable[[int], None]] = None

    # ──────────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────────
    def set_callbacks(
        self,
        on_startup_failed: Callable[[StartupErrorCode], None],
        on_server_ready: Callable[[int], None],
        on_server_restarted: Callable[[int], None],
    ) -> None:
        self.on_startup_failed = on_startup_failed
        self.on_server_ready = on_server_ready
        self.on_server_restarted = on_server_restarted

    @property
    def port(self) -> Optional[int]:
        return self.session.port if self.session else None

    @property
    def url(self) -> Optional[str]:
        if self.session is None:
            return None
        return f"http://{self.settings.host}:{self.session.port}/"

    def init(
        self,
        current_dir: PathLike,
        parent_dir: Optional[PathLike] = None,
        restart: bool = False,
    ) -> Optional[int]:
        """
        Start serving `current_dir` (with `parent_dir` as delta fallback).

        Returns the port, or None when startup failed and
        `on_startup_failed` was notified.  Without a registered failure
        callback the StartupError is raised to the caller instead.
        """
        bundle = BundleLocation(
            current_dir=Path(current_dir),
            parent_dir=Path(parent_dir) if parent_dir else None,
        )
        with self._lock:
            exclude = set()
            if self.session is not None:
                exclude.add(self.session.port)
                if restart:
                    self.state = ServerState.restarting
                self._destroy_session()

            self.state = ServerState.starting
            self.log.info("serve: %s %s", bundle.current_dir, bundle.parent_dir or "")
            if not bundle.current_dir.is_dir():
                self.log.warning("bundle directory %s does not exist", bundle.current_dir)
            try:
                self.session = self._start_session(bundle, restart, exclude)
            except StartupError as exc:
                self.state = ServerState.failed
                self.log.error("startup failed: %s", exc)
                self._report_failure(exc)
                return None

            self.state = ServerState.serving
            port = self.session.port
            callback = self.on_server_restarted if restart else self.on_server_ready
            if callback is not None:
                callback(port)
            return port

    def restart(
        self,
        current_dir: PathLike,
        parent_dir: Optional[PathLike] = None,
    ) -> Optional[int]:
        return self.init(current_dir, parent_dir, restart=True)

    def stop(self) -> None:
        """Tear down the live session (process exit)."""
        with self._lock:
            self._destroy_session()
            self.state = ServerState.stopped

    # ──────────────────────────────────────────────
    # Session handling
    # ──────────────────────────────────────────────
    def _pick_port(self, restart: bool, exclude: set) -> int:
        host = self.settings.host
        if not restart and not self._cold_started:
            self._cold_started = True
            default = self.settings.default_port
            if default not in exclude and ports.is_port_free(host, default):
                return default
            self.log.info("default port %s busy, scanning range", default)

        start, end = self.settings.port_range
        port = ports.find_free_port(host, start, end, exclude=exclude)
        self.log.info("assigned port %s", port)
        return port

    def _bind(self, port: int) -> socket.socket:
        host = self.settings.host
        sock = ports.new_socket(host)
        try:
            sock.bind((host, port))
        except OSError as exc:
            sock.close()
            raise ListenFailure(f"bind {host}:{port}: {exc}") from exc
        return sock

    def _start_session(
        self,
        bundle: BundleLocation,
        restart: bool,
        exclude: set,
    ) -> ServerSession:
        port = self._pick_port(restart, exclude)
        listener = self._bind(port)

        app = build_app(bundle, self.settings)
        uv_config = uvicorn.Config(
            app=app,
            log_level="error",
            access_log=False,
            lifespan="off",
        )
        server = uvicorn.Server(uv_config)
        thread = threading.Thread(
            target=server.run,
            kwargs={"sockets": [listener]},
            name=f"local-server-{port}",
            daemon=True,
        )
        thread.start()

        deadline = time.monotonic() + _STARTUP_TIMEOUT
        while not server.started:
            if not thread.is_alive() or time.monotonic() > deadline:
                server.should_exit = True
                thread.join(_SHUTDOWN_TIMEOUT)
                listener.close()
                raise ListenFailure(f"http server on port {port} did not come up")
            time.sleep(0.01)

        return ServerSession(
            port=port,
            listener=listener,
            server=server,
            thread=thread,
            app=app,
            bundle=bundle,
        )

    def _destroy_session(self) -> None:
        session, self.session = self.session, None
        if session is None:
            return
        self.log.info("closing listener on port %s", session.port)
        session.server.should_exit = True
        session.server.force_exit = True      # drop keep-alive / pending connections
        session.thread.join(_SHUTDOWN_TIMEOUT)
        if session.thread.is_alive():
            self.log.warning("server thread for port %s did not stop in time", session.port)
        session.listener.close()

    def _report_failure(self, exc: StartupError) -> None:
        if self.on_startup_failed is None:
            raise exc
        self.on_startup_failed(exc.code)
