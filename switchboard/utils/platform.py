"""Platform detection and per-user directories."""

from __future__ import annotations

import os
import sys
from pathlib import Path

APP_NAME = "switchboard"

# (override variable, Windows base variable, XDG variable, XDG fallback under $HOME)
_DIRS = {
    "config": ("SWITCHBOARD_CONFIG_DIR", "APPDATA", "XDG_CONFIG_HOME", (".config",)),
    "data": ("SWITCHBOARD_DATA_DIR", "LOCALAPPDATA", "XDG_DATA_HOME", (".local", "share")),
}


def get_platform() -> str:
    if sys.platform == "win32":
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


def _app_dir(kind: str) -> Path:
    override, windows_var, xdg_var, xdg_fallback = _DIRS[kind]
    env = os.environ.get(override)
    if env:
        return Path(env)

    home = Path.home()
    platform = get_platform()
    if platform == "windows":
        default = home / "AppData" / ("Roaming" if kind == "config" else "Local")
        return Path(os.environ.get(windows_var, default)) / APP_NAME
    if platform == "macos":
        return home / "Library" / "Application Support" / APP_NAME
    return Path(os.environ.get(xdg_var, home.joinpath(*xdg_fallback))) / APP_NAME


def get_config_dir() -> Path:
    """Where ``config.yaml`` is looked up when no path is given."""
    return _app_dir("config")


def get_data_dir() -> Path:
    """Where the credential database lives unless ``data_dir`` is set."""
    return _app_dir("data")
