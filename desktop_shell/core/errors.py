# desktop_shell/core/errors.py
"""
Desktop Shell – exception types
===============================

Startup errors carry a numeric code so the orchestrator (or any other
`on_startup_failed` callback) can tell "no free port" apart from
"listener failed to start".
"""

from __future__ import annotations

import enum


class StartupErrorCode(enum.IntEnum):
    NO_FREE_PORT = 0
    LISTEN_FAILED = 1


STARTUP_MESSAGES = {
    StartupErrorCode.NO_FREE_PORT: "Could not find free port.",
    StartupErrorCode.LISTEN_FAILED: "Could not start http server.",
}


class ShellError(Exception):
    """Base class for everything raised by desktop_shell."""


class SettingsError(ShellError):
    """settings.json is missing, unreadable or invalid."""


class ModuleLoadError(ShellError):
    """A plugin/module could not be imported, built or looked up."""


class StartupError(ShellError):
    code: StartupErrorCode = StartupErrorCode.LISTEN_FAILED

    def __init__(self, detail: str = "") -> None:
        message = STARTUP_MESSAGES[self.code]
        super().__init__(f"{message} {detail}".strip())
        self.detail = detail


class NoFreePort(StartupError):
    code = StartupErrorCode.NO_FREE_PORT


class ListenFailure(StartupError):
    code = StartupErrorCode.LISTEN_FAILED


class AssetReadFailure(ShellError):
    """A bundle file could not be read. Never fatal – the pipeline passes."""
