"""
Launcher configuration, resolved once at startup.
"""

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from .exceptions import ConfigError

# ==================== Defaults ====================

DEFAULT_PORT = 25190
DEFAULT_HOST = "127.0.0.1"
LAN_PLAY_VERSION = "0.2.3"
RELEASES_URL = "https://github.com/spacemeowx2/switch-lan-play/releases"
BAKED_CONFIG_NAME = "launcher_config.json"

BINARY_NAMES = {
    "win32": "lan-play-win64.exe",
    "darwin": "lan-play-macos",
    "linux": "lan-play-linux",
}


def platform_name(platform: Optional[str] = None) -> str:
    """Normalize sys.platform to the names the web app expects (win32, darwin, linux)"""
    platform = platform or sys.platform
    if platform.startswith("win"):
        return "win32"
    if platform == "darwin":
        return "darwin"
    return "linux"


def binary_name_for(platform: str) -> str:
    """Return the lan-play release asset name for a platform"""
    return BINARY_NAMES.get(platform, BINARY_NAMES["linux"])


def binary_url_for(version: str, binary_name: str) -> str:
    """Return the download URL of a lan-play release asset"""
    return f"{RELEASES_URL}/download/v{version}/{binary_name}"


def default_base_dir() -> Path:
    """Directory that holds the binary: next to a frozen executable, else the working directory"""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path.cwd()


@dataclass(frozen=True)
class LauncherConfig:
    """Immutable launcher settings."""

    relay: str
    base_dir: Path = field(default_factory=default_base_dir)
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    heartbeat_timeout: float = 30.0
    inactivity_timeout: float = 10 * 60.0
    check_interval: float = 5.0
    restart_delay: float = 3.0
    shutdown_grace: float = 1.0
    version: str = LAN_PLAY_VERSION
    platform: str = field(default_factory=platform_name)

    @property
    def binary_name(self) -> str:
        return binary_name_for(self.platform)

    @property
    def binary_url(self) -> str:
        return binary_url_for(self.version, self.binary_name)

    @property
    def binary_path(self) -> Path:
        return Path(self.base_dir) / self.binary_name

    @property
    def process_args(self) -> list:
        return ["--relay-server-addr", self.relay]


# ==================== Loading ====================

def load_baked_config(path: Path) -> Dict:
    """Read an optional baked config file; a missing file yields an empty dict"""
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Could not read baked config {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Baked config {path} must contain a JSON object")
    return data


def build_config(
    relay: Optional[str] = None,
    port: Optional[int] = None,
    base_dir: Optional[str] = None,
    config_path: Optional[str] = None,
    **overrides,
) -> LauncherConfig:
    """Merge baked config and command line values into a LauncherConfig"""
    resolved_dir = Path(base_dir).expanduser().resolve() if base_dir else default_base_dir()
    baked_path = Path(config_path).expanduser() if config_path else resolved_dir / BAKED_CONFIG_NAME
    baked = load_baked_config(baked_path)

    # Baked relay takes precedence over --relay, then the environment
    relay = baked.get("relay") or relay or os.getenv("LANPLAY_RELAY")
    if not relay or not str(relay).strip():
        raise ConfigError("relay server not specified")

    if port is None:
        port = baked.get("port", DEFAULT_PORT)
    try:
        port = int(port)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port: {port!r}")
    if not 0 < port < 65536:
        raise ConfigError(f"Invalid port: {port}")

    return LauncherConfig(relay=str(relay).strip(), base_dir=resolved_dir, port=port, **overrides)
