"""
Runtime configuration for the mudslide CLI.

Values are resolved once per invocation into a frozen Settings object and
passed to the components that need them. Precedence, highest first:
command-line flag, environment variable, <cache>/config.yaml, default.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from shared.log import get_logger

logger = get_logger(__name__)

CACHE_FOLDER_ENV = "MUDSLIDE_CACHE_FOLDER"
BRIDGE_URL_ENV = "MUDSLIDE_BRIDGE_URL"
RECONNECT_MAX_ENV = "MUDSLIDE_RECONNECT_MAX"
RECONNECT_BACKOFF_ENV = "MUDSLIDE_RECONNECT_BACKOFF"
REQUEST_TIMEOUT_ENV = "MUDSLIDE_REQUEST_TIMEOUT"
LOG_FILE_ENV = "MUDSLIDE_LOG_FILE"

DEFAULT_BRIDGE_URL = "ws://localhost:8765"
DEFAULT_REQUEST_TIMEOUT = 60.0
CONFIG_FILE_NAME = "config.yaml"

# -v count -> (client log level, transport log level)
_VERBOSITY = [
    ("WARNING", "silent"),
    ("INFO", "info"),
    ("DEBUG", "debug"),
    ("DEBUG", "trace"),
]


@dataclass(frozen=True)
class ReconnectPolicy:
    """
    What to do after a non-logout close.

    max_attempts=None retries forever; backoff_base=0 retries immediately.
    The attempt counter restarts every time the session opens.
    """
    max_attempts: Optional[int] = None
    backoff_base: float = 0.0
    backoff_cap: float = 30.0

    def allows(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt <= self.max_attempts

    def delay(self, attempt: int) -> float:
        """Exponential backoff for the given 1-based attempt"""
        if self.backoff_base <= 0:
            return 0.0
        return min(self.backoff_cap, self.backoff_base * (2 ** (attempt - 1)))


@dataclass(frozen=True)
class Settings:
    cache_folder: Path
    bridge_url: str = DEFAULT_BRIDGE_URL
    log_level: str = "WARNING"
    transport_log_level: str = "silent"
    log_file: Optional[Path] = None
    proxy: bool = False
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)

    @classmethod
    def resolve(
        cls,
        cache: Optional[str] = None,
        bridge: Optional[str] = None,
        verbose: int = 0,
        proxy: bool = False,
        env: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        env = os.environ if env is None else env

        cache_folder = Path(cache).expanduser() if cache else locate_default_cache_folder(env)
        file_config = load_config_file(cache_folder / CONFIG_FILE_NAME)
        reconnect_config = file_config.get("reconnect") or {}
        if not isinstance(reconnect_config, dict):
            logger.warning("Ignoring malformed 'reconnect' section in %s", CONFIG_FILE_NAME)
            reconnect_config = {}

        max_attempts = _pick(env.get(RECONNECT_MAX_ENV), reconnect_config.get("max_attempts"))
        backoff = _pick(env.get(RECONNECT_BACKOFF_ENV), reconnect_config.get("backoff"))
        timeout = _pick(env.get(REQUEST_TIMEOUT_ENV), file_config.get("request_timeout"))
        log_file = env.get(LOG_FILE_ENV)

        log_level, transport_log_level = _VERBOSITY[min(max(verbose, 0), len(_VERBOSITY) - 1)]

        return cls(
            cache_folder=cache_folder,
            bridge_url=bridge or env.get(BRIDGE_URL_ENV) or file_config.get("bridge_url") or DEFAULT_BRIDGE_URL,
            log_level=log_level,
            transport_log_level=transport_log_level,
            log_file=Path(log_file).expanduser() if log_file else None,
            proxy=proxy,
            request_timeout=_as_float(timeout, REQUEST_TIMEOUT_ENV, DEFAULT_REQUEST_TIMEOUT),
            reconnect=ReconnectPolicy(
                max_attempts=_as_int(max_attempts, RECONNECT_MAX_ENV),
                backoff_base=_as_float(backoff, RECONNECT_BACKOFF_ENV, 0.0),
            ),
        )


def locate_default_cache_folder(env: Optional[Mapping[str, str]] = None) -> Path:
    """Environment override, else the per-user data directory of the platform"""
    env = os.environ if env is None else env
    override = env.get(CACHE_FOLDER_ENV)
    if override:
        return Path(override).expanduser()

    home = Path.home()
    if sys.platform == "win32":
        return home / "AppData" / "Local" / "mudslide" / "Data"
    return home / ".local" / "share" / "mudslide"


def load_config_file(path: Path) -> Dict[str, Any]:
    """Read the optional YAML config; a missing or broken file yields {}"""
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Error reading {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring {path}: top level must be a mapping")
        return {}
    return data


def _pick(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _as_int(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s value %r", name, value)
        return None
    return number if number >= 0 else None


def _as_float(value: Any, name: str, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s value %r", name, value)
        return default
