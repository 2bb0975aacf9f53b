# desktop_shell/core/models.py
"""
Desktop Shell – shared data models
==================================

Settings, bundle locations and lifecycle states are **typed** value
objects defined here.  Pydantic validates `settings.json` and the
per-version `version.json` files.

Avoid adding business logic – that belongs in `core/` sub-modules.
"""

from __future__ import annotations

import enum
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ──────────────────────────────────────────────
# 1. Bundles
# ──────────────────────────────────────────────
class BundleLocation(BaseModel):
    """Directory pair served by the local server."""
    model_config = ConfigDict(frozen=True)

    current_dir: Path
    parent_dir: Optional[Path] = None       # previous version (delta bundles)

    def directories(self) -> List[Path]:
        dirs = [self.current_dir]
        if self.parent_dir is not None:
            dirs.append(self.parent_dir)
        return dirs


class BundleVersion(BaseModel):
    """Contents of `bundles/<version>/version.json`."""
    version: str
    parent: Optional[str] = None


# ──────────────────────────────────────────────
# 2. Routing
# ──────────────────────────────────────────────
class RouteRule(BaseModel):
    """Regex rewrite, first match wins. `rewrite_target` may use \\1 groups."""
    model_config = ConfigDict(frozen=True)

    match_pattern: str
    rewrite_target: str

    def apply(self, path: str) -> Optional[str]:
        m = re.match(self.match_pattern, path)
        if m is None:
            return None
        return m.expand(self.rewrite_target)


# ──────────────────────────────────────────────
# 3. Local server state
# ──────────────────────────────────────────────
class ServerState(str, enum.Enum):
    uninitialized = "uninitialized"
    starting = "starting"
    serving = "serving"
    restarting = "restarting"
    stopped = "stopped"
    failed = "failed"


# ──────────────────────────────────────────────
# 4. settings.json
# ──────────────────────────────────────────────
class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    default_port: int = 3000
    port_range: Tuple[int, int] = (8034, 8063)
    cordova_prefix: str = "/__cordova/"
    cordova_allow_list: List[str] = Field(
        default_factory=lambda: [
            "manifest.json",
            "app",
            "packages",
            "merged-stylesheets.css",
            "cordova.js",
        ]
    )
    resource_marker: str = "meteor_js_resource"
    no_index_marker: str = "meteor_dont_serve_index=true"
    index_document: str = "/index.html"
    sourcemap_extensions: List[str] = Field(default_factory=lambda: [".js", ".css"])

    @field_validator("host")
    @classmethod
    def loopback_only(cls, v: str) -> str:
        if v not in ("127.0.0.1", "localhost", "::1"):
            raise ValueError("the local server binds to loopback only")
        return v

    @model_validator(mode="after")
    def check_ports(self) -> "ServerSettings":
        start, end = self.port_range
        for port in (self.default_port, start, end):
            if not (1 <= port <= 65535):
                raise ValueError("port must be between 1 and 65535")
        if start > end:
            raise ValueError("port_range start must not exceed its end")
        return self


class WindowSettings(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: Optional[str] = None
    width: int = 800
    height: int = 600
    resizable: bool = True
    icon: Optional[str] = None
    windows: Optional[Dict[str, Any]] = Field(default=None, alias="_windows")
    linux: Optional[Dict[str, Any]] = Field(default=None, alias="_linux")
    osx: Optional[Dict[str, Any]] = Field(default=None, alias="_osx")

    def os_overrides(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: block
            for name, block in (
                ("windows", self.windows),
                ("linux", self.linux),
                ("osx", self.osx),
            )
            if block
        }


class Settings(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: Optional[str] = None
    dev_tools: bool = Field(default=False, alias="devTools")
    bundle_dir: str = "bundle"
    window: WindowSettings = Field(default_factory=WindowSettings)
    plugins: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    modules: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    server: ServerSettings = Field(default_factory=ServerSettings)
