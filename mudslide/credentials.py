"""
Persistent session credentials for the mudslide client.

Owns everything the transport needs to resume a session:
- creds.json            - registration data and device keys (presence = logged in)
- <key-name>.json       - auxiliary key files (pre-keys, sessions, sender keys)

The format of both is owned by the transport; this module only stores,
hands back, and deletes them. Other files in the cache folder (contacts.json,
config.yaml, logs/) are user data and are left alone.

No locking: two invocations sharing one cache folder is undefined behavior.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from mudslide.contacts import CONTACTS_FILE
from shared.errors import NotAuthenticated, StorageError
from shared.log import get_logger

logger = get_logger(__name__)

CREDS_FILE = "creds.json"

# Files in the cache folder that are never session artifacts
_USER_FILES = {CONTACTS_FILE}

_UNSAFE_CHARS = re.compile(r"[/\\:]")


@dataclass
class AuthState:
    """What the transport receives on every (re)connect"""
    creds: Optional[Dict[str, Any]] = None
    keys: Dict[str, Any] = field(default_factory=dict)


class CredentialStore:
    """
    File-based credential storage under the cache folder.

    Args:
        cache_folder: Folder returned by locate_cache_folder(); created lazily
    """

    def __init__(self, cache_folder: Path):
        self.cache_folder = Path(cache_folder).expanduser()

    def locate_cache_folder(self) -> Path:
        """Return the cache folder, creating it on first use"""
        if not self.cache_folder.exists():
            try:
                self.cache_folder.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"Could not create cache folder {self.cache_folder}: {e}") from e
            logger.info(f"Created mudslide cache folder: {self.cache_folder}")
        elif not self.cache_folder.is_dir():
            raise StorageError(f"Cache folder {self.cache_folder} is not a directory")
        return self.cache_folder

    @property
    def creds_file(self) -> Path:
        return self.locate_cache_folder() / CREDS_FILE

    def is_authenticated(self) -> bool:
        """True iff creds.json exists; contents are not validated"""
        return self.creds_file.exists()

    def require_authenticated(self) -> None:
        if not self.is_authenticated():
            raise NotAuthenticated()

    def clear(self) -> None:
        """Remove creds.json and every auxiliary key file; idempotent"""
        folder = self.locate_cache_folder()
        removed = 0
        for path in folder.glob("*.json"):
            if path.name in _USER_FILES:
                continue
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(f"Could not remove {path}: {e}") from e
        logger.debug(f"Cleared {removed} session file(s) from {folder}")

    # ========== Transport state ==========

    def load_auth_state(self) -> AuthState:
        """
        Read creds.json and the auxiliary key files.

        Unreadable files are logged and skipped; a missing creds.json yields
        AuthState(creds=None), which makes the transport start pairing.
        """
        folder = self.locate_cache_folder()
        state = AuthState(creds=self._atomic_read(folder / CREDS_FILE))

        for path in sorted(folder.glob("*.json")):
            if path.name == CREDS_FILE or path.name in _USER_FILES:
                continue
            data = self._atomic_read(path)
            if data is not None:
                state.keys[path.stem] = data
        return state

    def save_creds(self, creds: Mapping[str, Any]) -> None:
        self._atomic_write(self.creds_file, dict(creds))

    def save_keys(self, keys: Mapping[str, Any]) -> None:
        """Persist key files; a None value deletes that key"""
        folder = self.locate_cache_folder()
        for name, value in keys.items():
            path = folder / f"{_safe_key_name(name)}.json"
            if path.name == CREDS_FILE or path.name in _USER_FILES:
                logger.warning("Refusing to overwrite %s with key data", path.name)
                continue
            if value is None:
                try:
                    path.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    raise StorageError(f"Could not remove {path}: {e}") from e
            else:
                self._atomic_write(path, value)

    def _atomic_write(self, file_path: Path, data: Any) -> None:
        """
        Atomically write JSON data to file.

        Uses temp file + rename so an interrupted write never leaves a
        half-written creds.json behind.
        """
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=f"{file_path.stem}_",
                suffix=".json.tmp",
                dir=file_path.parent
            )
        except OSError as e:
            logger.error(f"Failed to create temp file for {file_path}: {e}")
            raise StorageError(f"Could not write {file_path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(data, tmp)
                tmp.flush()
                os.fsync(tmp.fileno())

            os.replace(tmp_path, file_path)
            logger.debug(f"Saved {file_path.name}")

        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write {file_path}: {e}")
            if os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass
            raise StorageError(f"Could not write {file_path}: {e}") from e

    def _atomic_read(self, file_path: Path) -> Optional[Any]:
        """
        Read JSON data from file.

        Returns:
            Parsed JSON, or None if the file doesn't exist or is invalid
        """
        if not file_path.exists():
            return None

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return data
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read {file_path}: {e}")
            return None


def _safe_key_name(name: str) -> str:
    return _UNSAFE_CHARS.sub("__", name)
