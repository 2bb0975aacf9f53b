# desktop_shell/main.py
"""
Desktop Shell – application entry point
=======================================

The skeleton for the whole integration: settings are read, plugins and
modules are loaded, the local server is spawned and the native window is
pointed at it.  Hot code push is wired through `UpdateCoordinator`.

Run options
-----------
• Desktop window:          python run_desktop_shell.py
• As a module:             python -m desktop_shell.main
"""

from __future__ import annotations

import importlib.util
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from desktop_shell.core import config, logs, modules
from desktop_shell.core.bundles import Autoupdate, BundleStore
from desktop_shell.core.coordinator import UpdateCoordinator
from desktop_shell.core.errors import STARTUP_MESSAGES, SettingsError, StartupErrorCode
from desktop_shell.core.events import EventBus, LifecycleEvent
from desktop_shell.core.local_server import LocalServer

try:
    import webview  # type: ignore
except ModuleNotFoundError:
    webview = None  # run_desktop() will raise

# create_window() keywords that may be passed through from settings.window
_WINDOW_PASSTHROUGH = {
    "x", "y", "min_size", "fullscreen", "frameless", "easy_drag",
    "on_top", "confirm_close", "background_color", "text_select", "zoomable",
}

# Injected after every page load.  Real navigations (ones the page's own
# router did not handle) are cancelled and reported to the bridge.
PRELOAD_JS = """
(function () {
    if (window.__desktopShellInstalled) { return; }
    window.__desktopShellInstalled = true;

    function willNavigate(url) {
        if (window.pywebview && window.pywebview.api) {
            window.pywebview.api.will_navigate(String(url));
        }
    }

    window.addEventListener('click', function (event) {
        if (event.defaultPrevented || event.button !== 0) { return; }
        var link = event.target.closest && event.target.closest('a[href]');
        if (!link || (link.target && link.target !== '_self')) { return; }
        var url = new URL(link.href, window.location.href);
        if (url.origin !== window.location.origin) { return; }
        if (url.pathname === window.location.pathname && url.hash) { return; }
        event.preventDefault();
        willNavigate(url.href);
    });

    window.addEventListener('submit', function (event) {
        if (event.defaultPrevented) { return; }
        event.preventDefault();
        willNavigate(window.location.href);
    });

    window.desktopShell = {
        reload: function () { willNavigate(window.location.href); }
    };
})();
"""


class Bridge:  # pylint: disable=too-few-public-methods
    """Exposed to the page as `window.pywebview.api`."""

    def __init__(self, app: "DesktopApp") -> None:
        self._app = app

    def will_navigate(self, url: str) -> bool:
        return self._app.on_will_navigate(url)


class DesktopApp:
    def __init__(self, settings_file: Optional[Path] = None) -> None:
        logs.init_logging()
        self.l = logs.get_logger("main")

        self.events = EventBus()
        self.registry = modules.ModuleRegistry()

        self.desktop: Any = None
        self.window: Any = None
        self.window_already_loaded = False
        self.local_server: Optional[LocalServer] = None
        self.autoupdate: Optional[Autoupdate] = None
        self.exit_code = 0

        self.catch_uncaught_exceptions()

        self.settings = self.load_settings(settings_file)

        # Owns the pending-update flag; subscribes to NEW_VERSION_READY now.
        self.coordinator = UpdateCoordinator(
            self.events, self.registry, logs.clone(self.l, "hcp")
        )

    # ──────────────────────────────────────────────
    # Bootstrap
    # ──────────────────────────────────────────────
    def load_settings(self, settings_file: Optional[Path]):
        try:
            return config.load_settings(settings_file)
        except SettingsError as exc:
            self.l.error("could not read settings.json, please reinstall this application: %s", exc)
            raise SystemExit(1) from exc

    def catch_uncaught_exceptions(self) -> None:
        sys.excepthook = lambda tp, value, tb: self.on_uncaught_exception(value, tb)
        threading.excepthook = lambda args: self.on_uncaught_exception(
            args.exc_value, args.exc_traceback
        )

    def on_uncaught_exception(self, error: BaseException, tb: Any = None) -> None:
        self.l.error("uncaught exception: %r", error, exc_info=(type(error), error, tb))
        try:
            self.events.publish(LifecycleEvent.UNHANDLED_EXCEPTION, error)
        except Exception:  # noqa: BLE001
            self.l.warning("could not publish unhandledException", exc_info=True)
        self.l.error("Internal error occurred. Restart this application. "
                     "If the problem persists, contact support or try to reinstall.")
        self.quit(1)

    def _context(self, name: str, module_settings: Optional[Dict[str, Any]] = None):
        return modules.ModuleContext(
            logger=logs.get_logger(name),
            settings=self.settings,
            events=self.events,
            registry=self.registry,
            module_settings=module_settings or {},
        )

    def load_plugins(self) -> None:
        """Loads and initialises all plugins listed in settings.json."""
        for import_path, plugin_settings in self.settings.plugins.items():
            name = modules.default_name(import_path)
            self.l.debug("loading plugin: %s", import_path)
            plugin = modules.load_module(import_path, self._context(name, plugin_settings))
            self.registry.register(name, plugin)

    def load_modules(self) -> None:
        """Built-in modules first (a plugin may already provide one), then app modules."""
        if "autoupdate" not in self.registry:
            self.registry.register(
                "autoupdate",
                BundleStore(
                    config.shipped_bundle_dir(self.settings),
                    events=self.events,
                    log=logs.get_logger("autoupdate"),
                ),
            )
        if "localServer" not in self.registry:
            self.registry.register(
                "localServer",
                LocalServer(log=logs.get_logger("localServer"), settings=self.settings.server),
            )

        for import_path, module_settings in self.settings.modules.items():
            name = modules.default_name(import_path)
            self.l.debug("loading module: %s", import_path)
            module = modules.load_module(import_path, self._context(name, module_settings))
            self.registry.register(name, module)

        self.autoupdate = self.registry.require("autoupdate", Autoupdate)
        self.local_server = self.registry.require("localServer", LocalServer)

    def load_desktop(self) -> None:
        """Optional `desktop.py` next to settings.json: `desktop(context)` hook."""
        path = config.APP_ROOT / "desktop.py"
        if not path.exists():
            self.l.debug("no desktop.py")
            return
        try:
            spec = importlib.util.spec_from_file_location("desktop", path)
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
            self.desktop = module.desktop(self._context("desktop"))
        except Exception:  # noqa: BLE001
            self.l.warning("could not load desktop.py", exc_info=True)
            return
        self.events.publish(LifecycleEvent.DESKTOP_LOADED, self.desktop)
        self.l.debug("desktop loaded")

    def start(self) -> None:
        """Load plugins, modules and desktop.py, then cold-start the local server."""
        self.l.info("starting %s %s", config.APP_NAME, config.SHELL_VERSION)

        self.load_plugins()
        self.events.publish(LifecycleEvent.BEFORE_MODULES_LOAD)
        self.load_modules()

        self.events.publish(LifecycleEvent.BEFORE_DESKTOP_LOADED)
        self.load_desktop()

        self.local_server.set_callbacks(
            self.on_startup_failed,
            self.on_server_ready,
            self.on_server_restarted,
        )
        self.local_server.init(
            self.autoupdate.get_directory(),
            self.autoupdate.get_parent_directory(),
        )

    # ──────────────────────────────────────────────
    # Local server callbacks
    # ──────────────────────────────────────────────
    def on_startup_failed(self, code: StartupErrorCode) -> None:
        self.events.publish(LifecycleEvent.STARTUP_FAILED)
        self.l.error(
            "Could not initialize app. Please contact your support. Error code: %s (%s)",
            int(code), STARTUP_MESSAGES.get(code, "unknown"),
        )
        self.quit(1)

    def window_options(self) -> Dict[str, Any]:
        window = self.settings.window
        options: Dict[str, Any] = {
            "title": window.title or self.settings.name or config.APP_NAME,
            "width": window.width,
            "height": window.height,
            "resizable": window.resizable,
        }
        extra = window.model_extra or {}
        options.update({k: v for k, v in extra.items() if k in _WINDOW_PASSTHROUGH})
        return options

    def on_server_ready(self, port: int) -> None:
        """Open the (hidden) window on the freshly started server."""
        if webview is None:
            raise RuntimeError("pywebview not installed – run:  pip install pywebview")

        self.window = webview.create_window(
            url=self._url(port),
            js_api=Bridge(self),
            hidden=True,
            **self.window_options(),
        )
        self.events.publish(LifecycleEvent.WINDOW_OPENED, self.window)
        self.window.events.loaded += self.on_loaded

    def on_server_restarted(self, port: int) -> None:
        """On server restart point the window to the new port."""
        self.window.load_url(self._url(port))

    def _url(self, port: int) -> str:
        return f"http://{self.settings.server.host}:{port}/"

    # ──────────────────────────────────────────────
    # Window events
    # ──────────────────────────────────────────────
    def on_loaded(self, *_args) -> None:
        self.window.evaluate_js(PRELOAD_JS)
        if not self.window_already_loaded:
            self.window_already_loaded = True
            self.events.publish(LifecycleEvent.BEFORE_LOADING_FINISHED)
            self.window.show()
        self.events.publish(LifecycleEvent.LOADING_FINISHED)

    def on_will_navigate(self, url: str) -> bool:
        return self.coordinator.will_navigate(url)

    # ──────────────────────────────────────────────
    # Teardown
    # ──────────────────────────────────────────────
    def quit(self, exit_code: int = 0) -> None:
        self.exit_code = exit_code
        if self.window is not None:
            self.window.destroy()
            return
        raise SystemExit(exit_code)

    def shutdown(self) -> None:
        if self.local_server is not None:
            self.local_server.stop()


def run_desktop(settings_file: Optional[Path] = None) -> int:
    if webview is None:
        raise RuntimeError("pywebview not installed – run:  pip install pywebview")

    app = DesktopApp(settings_file)
    app.start()

    start_options: Dict[str, Any] = {"debug": app.settings.dev_tools}
    if app.settings.window.icon:
        start_options["icon"] = app.settings.window.icon
    try:
        webview.start(**start_options)
    finally:
        app.shutdown()
    return app.exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(run_desktop())
