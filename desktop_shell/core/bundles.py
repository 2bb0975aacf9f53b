# desktop_shell/core/bundles.py
"""
Desktop Shell – bundle store (default autoupdate collaborator)
==============================================================

Downloading and verifying new bundles is somebody else's job; this store
only knows *which* directory is active and which one is waiting.

Filesystem layout
-----------------
~/.desktop-shell/bundles/
    ├─ 1.4.0/
    │   ├─ version.json         ← {"version": "1.4.0", "parent": "shipped"}
    │   ├─ index.html
    │   └─ ...                  ← only files changed since the parent
    ├─ 1.5.0/
    └─ current-version.txt      ← stores *just* the active version in one line

Without a marker the bundle shipped with the application is served.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from desktop_shell.core import config
from desktop_shell.core.events import EventBus, LifecycleEvent
from desktop_shell.core.models import BundleVersion

SHIPPED_VERSION = "shipped"


@runtime_checkable
class Autoupdate(Protocol):
    """What the orchestrator needs from whoever manages bundle versions."""

    def get_directory(self) -> Path: ...

    def get_parent_directory(self) -> Optional[Path]: ...

    def get_pending_version(self) -> Optional[str]: ...

    def on_reset(self) -> None: ...


class BundleStore:
    def __init__(
        self,
        shipped_dir: Path,
        events: Optional[EventBus] = None,
        log: Optional[logging.Logger] = None,
        root: Optional[Path] = None,
    ) -> None:
        self.shipped_dir = Path(shipped_dir)
        self.events = events
        self.log = log or logging.getLogger("desktop_shell.autoupdate")
        self.root = Path(root) if root else config.BUNDLES_DIR
        self._pending: Optional[str] = None

    # ──────────────────────────────────────────────
    # Marker helpers
    # ──────────────────────────────────────────────
    @property
    def marker(self) -> Path:
        return self.root / config.CURRENT_MARKER_NAME

    def current_version(self) -> str:
        if self.marker.exists():
            version = self.marker.read_text(encoding="utf-8").strip()
            if version:
                return version
        return SHIPPED_VERSION

    def _write_marker(self, version: str) -> None:
        tmp = self.marker.with_suffix(".tmp")
        tmp.write_text(version, encoding="utf-8")
        tmp.replace(self.marker)

    def version_dir(self, version: str) -> Path:
        if version == SHIPPED_VERSION:
            return self.shipped_dir
        return self.root / version

    def _read_version(self, version: str) -> Optional[BundleVersion]:
        path = self.version_dir(version) / config.VERSION_FILE_NAME
        if not path.exists():
            return None
        return BundleVersion.model_validate_json(path.read_text(encoding="utf-8"))

    # ──────────────────────────────────────────────
    # Autoupdate interface
    # ──────────────────────────────────────────────
    def get_directory(self) -> Path:
        return self.version_dir(self.current_version())

    def get_parent_directory(self) -> Optional[Path]:
        info = self._read_version(self.current_version())
        if info is None or not info.parent:
            return None
        parent = self.version_dir(info.parent)
        if not parent.is_dir():
            self.log.warning("parent bundle %s missing, serving without it", info.parent)
            return None
        return parent

    def get_pending_version(self) -> Optional[str]:
        return self._pending

    def on_reset(self) -> None:
        """Promote the pending version. Called right before the server restarts."""
        if self._pending is None:
            return
        self._write_marker(self._pending)
        self.log.info("switched to bundle %s", self._pending)
        self._pending = None

    # ──────────────────────────────────────────────
    # Called once a new bundle is fully on disk
    # ──────────────────────────────────────────────
    def stage(self, version: str, parent: Optional[str] = None) -> None:
        """
        Register `bundles/<version>/` as the next bundle and announce it.

        Raises FileNotFoundError if the directory (or its parent) is missing.
        """
        target = self.version_dir(version)
        if version == SHIPPED_VERSION or not target.is_dir():
            raise FileNotFoundError(f"Bundle '{version}' not found in {self.root}")
        if parent and not self.version_dir(parent).is_dir():
            raise FileNotFoundError(f"Parent bundle '{parent}' not found")

        info = BundleVersion(version=version, parent=parent)
        tmp = target / f"{config.VERSION_FILE_NAME}.tmp"
        tmp.write_text(info.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(target / config.VERSION_FILE_NAME)

        self._pending = version
        self.log.info("bundle %s ready (parent: %s)", version, parent)
        if self.events is not None:
            self.events.publish(LifecycleEvent.NEW_VERSION_READY, version)
