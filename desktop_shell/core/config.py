# desktop_shell/core/config.py
"""
Desktop Shell – central configuration helper
============================================

All modules import *only* from this file when they need:
• application constants (name, id, current shell version)
• resolved user-specific paths (bundles/, logs/, config/)
• the validated `settings.json` shipped next to the application

Directory creation happens lazily (at import time) and should complete in
milliseconds.  Reading `settings.json` is explicit – call
`load_settings()` from the composition point.
"""

from __future__ import annotations

import json
import os
import platform
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from desktop_shell.core.errors import SettingsError
from desktop_shell.core.models import Settings, WindowSettings

# ──────────────────────────────────────────────
# 1. Application constants
# ──────────────────────────────────────────────
APP_NAME: str = "Desktop Shell"
APP_ID: str = "desktop-shell"
SHELL_VERSION: str = "0.1.0"

# file & directory names
SETTINGS_FILE_NAME = "settings.json"
CURRENT_MARKER_NAME = "current-version.txt"
VERSION_FILE_NAME = "version.json"

# where the application itself lives (settings.json, assets/, bundle/)
APP_ROOT: Path = Path(os.getenv("DESKTOP_SHELL_APP_ROOT", Path.cwd())).resolve()


# ──────────────────────────────────────────────
# 2. Directory resolution helpers
# ──────────────────────────────────────────────
def _home_base() -> Path:
    """Return the root folder for all user data (`~/.desktop-shell/` on Unix,
    `%LOCALAPPDATA%\\DesktopShell\\` on Windows). Can be overridden with
    the env variable `DESKTOP_SHELL_HOME`."""
    if env := os.getenv("DESKTOP_SHELL_HOME"):
        return Path(env).expanduser().resolve()

    if platform.system() == "Windows":
        root = Path(os.getenv("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return (root / "DesktopShell").resolve()

    return (Path.home() / ".desktop-shell").resolve()


BASE_DIR: Path = _home_base()
BUNDLES_DIR: Path = BASE_DIR / "bundles"
LOG_DIR: Path = BASE_DIR / "logs"
CONFIG_DIR: Path = BASE_DIR / "config"

_ALL_DIRS = (
    BUNDLES_DIR,
    LOG_DIR,
    CONFIG_DIR,
)


# ──────────────────────────────────────────────
# 3. Bootstrap – ensure folders exist
# ──────────────────────────────────────────────
def ensure_dirs() -> None:
    """Create any missing directories (no error if they exist)."""
    for d in _ALL_DIRS:
        d.mkdir(parents=True, exist_ok=True)


ensure_dirs()  # create on first import


# ──────────────────────────────────────────────
# 4. OS detection
# ──────────────────────────────────────────────
def current_os() -> str:
    """Return one of `windows`, `linux`, `osx` (the keys used in settings)."""
    system = platform.system()
    if system == "Windows":
        return "windows"
    if system == "Darwin":
        return "osx"
    return "linux"


# ──────────────────────────────────────────────
# 5. settings.json (read only)
# ──────────────────────────────────────────────
def settings_path() -> Path:
    return APP_ROOT / SETTINGS_FILE_NAME


def _load_raw(path: Path) -> Dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as fh:
            return json.load(fh)
    except (json.JSONDecodeError, OSError) as exc:
        raise SettingsError(f"Could not read {path.name}: {exc}") from exc


def merge_os_window_settings(
    window: WindowSettings,
    os_name: Optional[str] = None,
) -> WindowSettings:
    """Overlay the `_windows` / `_linux` / `_osx` block matching the running OS."""
    os_name = os_name or current_os()
    override = window.os_overrides().get(os_name)
    if not override:
        return window
    data = window.model_dump(by_alias=True)
    data.update(override)
    return WindowSettings.model_validate(data)


def resolve_icon(window: WindowSettings, root: Optional[Path] = None) -> WindowSettings:
    """Relative icon names point into the application's `assets/` folder."""
    if not window.icon:
        return window
    icon = Path(window.icon)
    if icon.is_absolute():
        return window
    root = root or APP_ROOT
    return window.model_copy(update={"icon": str(root / "assets" / icon)})


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Read & validate settings.json.

    Raises SettingsError when the file is missing, not JSON or invalid –
    the application can not run without it.
    """
    path = path or settings_path()
    raw = _load_raw(path)
    try:
        settings = Settings.model_validate(raw)
    except ValidationError as exc:
        raise SettingsError(f"Invalid {path.name}: {exc}") from exc

    window = merge_os_window_settings(settings.window)
    window = resolve_icon(window, path.parent)
    return settings.model_copy(update={"window": window})


# ──────────────────────────────────────────────
# 6. Helper utilities (public API)
# ──────────────────────────────────────────────
def shipped_bundle_dir(settings: Settings) -> Path:
    """The bundle that ships with the application (used until an update lands)."""
    bundle = Path(settings.bundle_dir)
    if bundle.is_absolute():
        return bundle
    return APP_ROOT / bundle


# ──────────────────────────────────────────────
# Unit-test helpers
# ──────────────────────────────────────────────
def _reset_for_tests(tmp_path: Path) -> None:  # pragma: no cover
    """Internal helper: redirect BASE_DIR / APP_ROOT during pytest."""
    global BASE_DIR, BUNDLES_DIR, LOG_DIR, CONFIG_DIR, APP_ROOT, _ALL_DIRS
    BASE_DIR = tmp_path
    BUNDLES_DIR = BASE_DIR / "bundles"
    LOG_DIR = BASE_DIR / "logs"
    CONFIG_DIR = BASE_DIR / "config"
    APP_ROOT = tmp_path
    _ALL_DIRS = (BUNDLES_DIR, LOG_DIR, CONFIG_DIR)
    ensure_dirs()
