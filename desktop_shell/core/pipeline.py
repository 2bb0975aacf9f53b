# desktop_shell/core/pipeline.py
"""
Desktop Shell – asset resolution pipeline
=========================================

Maps a request path onto a file of the layered bundle.  Instead of
reading the bundle manifest we run a fixed chain of handlers; each one
either returns a response or passes (returns None):

1. cordova rewrite      /__cordova/<x> -> /<x> or /app/<x>
2. sourcemap header     X-SourceMap for .js/.css when <path>.map exists
3. static               current bundle
4. static               parent bundle (delta updates carry changed files only)
5. SPA fallback         everything else -> /index.html
6. static               current bundle, serves the rewritten index

The order is part of the contract: headers must be set before the asset
is served, and real files must win over the index fallback.

Blocking filesystem work runs in anyio's worker threads so the event
loop keeps accepting connections.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from urllib.parse import quote

import anyio
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from starlette.staticfiles import StaticFiles
from starlette.types import Scope

from desktop_shell.core import config
from desktop_shell.core.errors import AssetReadFailure
from desktop_shell.core.models import BundleLocation, RouteRule, ServerSettings

log = logging.getLogger("desktop_shell.pipeline")


# ──────────────────────────────────────────────
# 1. Request state passed along the chain
# ──────────────────────────────────────────────
@dataclass
class AssetRequest:
    path: str                                   # decoded, may be rewritten
    query: str = ""
    method: str = "GET"
    scope: Scope = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)  # extra response headers

    @property
    def url(self) -> str:
        return f"{self.path}?{self.query}" if self.query else self.path


def _relative(path: str) -> str:
    """URL path -> OS relative path (same normalisation StaticFiles uses)."""
    return os.path.normpath(os.path.join(*path.split("/")))


def _safe_join(directory: Path, path: str) -> Optional[Path]:
    rel = _relative(path)
    root = os.path.abspath(directory)
    full = os.path.abspath(os.path.join(root, rel))
    if os.path.commonpath([full, root]) != root:
        return None
    return Path(full)


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except (OSError, ValueError):
        return False


# ──────────────────────────────────────────────
# 2. Handlers
# ──────────────────────────────────────────────
class AssetHandler:
    """One link of the chain. Return a Response to stop, None to pass."""

    async def handle(self, request: AssetRequest) -> Optional[Response]:
        raise NotImplementedError


class RewriteHandler(AssetHandler):
    """Apply the first matching RouteRule to path+query. Never responds."""

    def __init__(self, rules: Sequence[RouteRule]) -> None:
        self.rules = list(rules)

    async def handle(self, request: AssetRequest) -> Optional[Response]:
        for rule in self.rules:
            target = rule.apply(request.url)
            if target is not None:
                log.debug("rewrite %s -> %s", request.url, target)
                request.path, _, request.query = target.partition("?")
                break
        return None


class SourceMapHandler(AssetHandler):
    """Attach `X-SourceMap` when a sibling .map file exists in either bundle."""

    def __init__(self, bundle: BundleLocation, extensions: Sequence[str]) -> None:
        self.bundle = bundle
        self.extensions = frozenset(extensions)

    async def _find_map(self, path: str) -> bool:
        for directory in self.bundle.directories():
            candidate = _safe_join(directory, f"{path}.map")
            if candidate is not None and await anyio.to_thread.run_sync(_is_file, candidate):
                return True
        return False

    async def handle(self, request: AssetRequest) -> Optional[Response]:
        ext = posixpath.splitext(request.path)[1]
        if ext in self.extensions and await self._find_map(request.path):
            request.headers["X-SourceMap"] = f"{quote(request.path)}.map?{request.query}"
        return None


class StaticHandler(AssetHandler):
    """Serve an existing regular file from one directory, else pass."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self._files = StaticFiles(directory=str(self.directory), check_dir=False)

    async def _lookup(self, path: str):
        try:
            return await anyio.to_thread.run_sync(self._files.lookup_path, _relative(path))
        except (OSError, ValueError) as exc:
            raise AssetReadFailure(f"{self.directory}: {path}: {exc}") from exc

    async def handle(self, request: AssetRequest) -> Optional[Response]:
        if request.method not in ("GET", "HEAD"):
            return None
        try:
            full_path, stat_result = await self._lookup(request.path)
        except AssetReadFailure as exc:
            log.warning("asset read failed, passing: %s", exc)
            return None
        if stat_result is None or not stat.S_ISREG(stat_result.st_mode):
            return None
        response = self._files.file_response(full_path, stat_result, request.scope)
        response.headers.update(request.headers)
        return response


class SpaFallbackHandler(AssetHandler):
    """Unresolved routes get the root document unless the URL opts out."""

    def __init__(self, index_document: str, no_index_marker: str) -> None:
        self.index_document = index_document
        self.no_index_marker = no_index_marker

    async def handle(self, request: AssetRequest) -> Optional[Response]:
        if self.no_index_marker not in request.url:
            request.path = self.index_document
            request.headers.clear()
        return None


# ──────────────────────────────────────────────
# 3. Pipeline
# ──────────────────────────────────────────────
def cordova_rules(server: ServerSettings) -> List[RouteRule]:
    """
    Allow-listed entries keep their path (prefix stripped), everything else
    under the cordova prefix is served from the `/app/` sub-path.
    """
    prefix = re.escape(server.cordova_prefix)
    names = "|".join(re.escape(n) for n in server.cordova_allow_list)
    marker = re.escape(server.resource_marker)
    keep = rf"^{prefix}(?=$|\?|(?:{names})(?:[/?]|$)|.*{marker})(.*)$"
    return [
        RouteRule(match_pattern=keep, rewrite_target=r"/\1"),
        RouteRule(match_pattern=rf"^{prefix}(.*)$", rewrite_target=r"/app/\1"),
    ]


class AssetPipeline:
    def __init__(self, handlers: Sequence[AssetHandler]) -> None:
        self.handlers = list(handlers)

    @classmethod
    def for_bundle(
        cls,
        bundle: BundleLocation,
        server: Optional[ServerSettings] = None,
    ) -> "AssetPipeline":
        server = server or ServerSettings()
        handlers: List[AssetHandler] = [
            RewriteHandler(cordova_rules(server)),
            SourceMapHandler(bundle, server.sourcemap_extensions),
            StaticHandler(bundle.current_dir),
        ]
        if bundle.parent_dir is not None:
            handlers.append(StaticHandler(bundle.parent_dir))
        handlers += [
            SpaFallbackHandler(server.index_document, server.no_index_marker),
            StaticHandler(bundle.current_dir),
        ]
        return cls(handlers)

    async def resolve(self, request: AssetRequest) -> Response:
        for handler in self.handlers:
            response = await handler.handle(request)
            if response is not None:
                return response
        return PlainTextResponse("Not Found", status_code=404)


def build_app(
    bundle: BundleLocation,
    server: Optional[ServerSettings] = None,
) -> FastAPI:
    """ASGI app serving `bundle` through a fresh AssetPipeline."""
    pipeline = AssetPipeline.for_bundle(bundle, server)

    app = FastAPI(
        title=config.APP_NAME,
        version=config.SHELL_VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.pipeline = pipeline
    app.state.bundle = bundle

    @app.api_route("/{full_path:path}", methods=["GET", "HEAD"], include_in_schema=False)
    async def serve_asset(request: Request):
        log.debug("%s %s", request.method, request.url.path)
        asset_request = AssetRequest(
            path=request.scope["path"],
            query=request.url.query,
            method=request.method,
            scope=request.scope,
        )
        return await pipeline.resolve(asset_request)

    return app
