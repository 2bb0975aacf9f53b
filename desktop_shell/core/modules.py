# desktop_shell/core/modules.py
"""
Desktop Shell – module registry
===============================

Plugins and app modules are plain classes taking a `ModuleContext`.
They are imported by dotted path (`package.module:ClassName`, or a module
exposing `Module`) and registered under a name at the single composition
point in `desktop_shell.main`.  Lookups that need a specific capability
go through `require()`, which checks the instance against a Protocol.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type, TypeVar

from desktop_shell.core.errors import ModuleLoadError
from desktop_shell.core.events import EventBus
from desktop_shell.core.models import Settings

T = TypeVar("T")


@dataclass
class ModuleContext:
    """Everything a module gets handed on construction."""
    logger: logging.Logger
    settings: Settings
    events: EventBus
    registry: "ModuleRegistry"
    module_settings: Dict[str, Any] = field(default_factory=dict)


class ModuleRegistry:
    def __init__(self) -> None:
        self._modules: Dict[str, Any] = {}

    def register(self, name: str, module: Any) -> None:
        if name in self._modules:
            raise ModuleLoadError(f"module '{name}' registered twice")
        self._modules[name] = module

    def get(self, name: str) -> Optional[Any]:
        return self._modules.get(name)

    def require(self, name: str, capability: Type[T]) -> T:
        """
        Return module `name`, checked against a runtime-checkable Protocol
        (or any class).  Raises ModuleLoadError otherwise.
        """
        module = self._modules.get(name)
        if module is None:
            raise ModuleLoadError(f"module '{name}' is not loaded")
        if not isinstance(module, capability):
            raise ModuleLoadError(
                f"module '{name}' does not provide {capability.__name__}"
            )
        return module

    def names(self) -> List[str]:
        return list(self._modules)

    def __contains__(self, name: str) -> bool:
        return name in self._modules


def _resolve(import_path: str) -> type:
    module_path, _, attr = import_path.partition(":")
    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        raise ModuleLoadError(f"could not import '{module_path}': {exc}") from exc

    attr = attr or "Module"
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise ModuleLoadError(f"'{module_path}' has no attribute '{attr}'") from exc


def default_name(import_path: str) -> str:
    """`pkg.sub.mod:Cls` -> `mod`"""
    return import_path.partition(":")[0].rsplit(".", 1)[-1]


def load_module(import_path: str, context: ModuleContext) -> Any:
    """Import `import_path` and build the module with `context`."""
    factory = _resolve(import_path)
    try:
        return factory(context)
    except ModuleLoadError:
        raise
    except Exception as exc:
        raise ModuleLoadError(f"could not initialise '{import_path}': {exc}") from exc
