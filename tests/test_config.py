import json

import pytest

from desktop_shell.core import config
from desktop_shell.core.errors import SettingsError
from desktop_shell.core.models import ServerSettings, WindowSettings


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_defaults(shell_home):
    settings = config.load_settings(_write(shell_home / "settings.json", {}))
    assert settings.dev_tools is False
    assert settings.server.host == "127.0.0.1"
    assert settings.server.default_port == 3000
    assert settings.server.port_range == (8034, 8063)
    assert "merged-stylesheets.css" in settings.server.cordova_allow_list
    assert config.shipped_bundle_dir(settings) == shell_home / "bundle"


def test_missing_or_malformed_settings(shell_home):
    with pytest.raises(SettingsError):
        config.load_settings(shell_home / "nope.json")
    bad = shell_home / "settings.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(SettingsError):
        config.load_settings(bad)


@pytest.mark.parametrize("server", [
    {"host": "0.0.0.0"},
    {"port_range": [9000, 8000]},
    {"default_port": 70000},
])
def test_invalid_server_settings(shell_home, server):
    path = _write(shell_home / "settings.json", {"server": server})
    with pytest.raises(SettingsError):
        config.load_settings(path)


def test_os_specific_window_settings_are_merged():
    window = WindowSettings.model_validate({
        "width": 800,
        "_osx": {"width": 1200, "frameless": True},
        "_windows": {"width": 1000},
    })
    merged = config.merge_os_window_settings(window, "osx")
    assert merged.width == 1200
    assert merged.model_extra["frameless"] is True
    assert config.merge_os_window_settings(window, "linux").width == 800


def test_icon_resolved_under_assets(tmp_path):
    window = WindowSettings(icon="icon.png")
    assert config.resolve_icon(window, tmp_path).icon == str(tmp_path / "assets" / "icon.png")
    absolute = WindowSettings(icon=str(tmp_path / "x.png"))
    assert config.resolve_icon(absolute, tmp_path).icon == str(tmp_path / "x.png")


def test_load_settings_applies_window_helpers(shell_home, monkeypatch):
    monkeypatch.setattr(config, "current_os", lambda: "linux")
    path = _write(shell_home / "settings.json", {
        "devTools": True,
        "window": {"icon": "app.png", "_linux": {"height": 900}},
    })
    settings = config.load_settings(path)
    assert settings.dev_tools is True
    assert settings.window.height == 900
    assert settings.window.icon == str(shell_home / "assets" / "app.png")


def test_server_settings_accept_lists_for_ranges():
    assert ServerSettings(port_range=[1, 2]).port_range == (1, 2)
