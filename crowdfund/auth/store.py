"""Credential store: a single durable slot holding the session token."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class CredentialStore(Protocol):
    def get(self) -> Optional[str]: ...

    def set(self, token: str) -> None: ...

    def clear(self) -> None: ...


class MemoryCredentialStore:
    """Process-local store (tests, ephemeral CLI runs)."""

    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token

    def get(self) -> Optional[str]:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class FileCredentialStore:
    """
    JSON file with one key for the token; survives process restarts.

    If the file cannot be written (read-only home, full disk), the store degrades to
    an in-memory slot for the lifetime of this object. Callers are not told: the
    controller keeps the token in memory for the current run anyway.
    """

    def __init__(self, path: str, key: str = "token") -> None:
        self.path = os.path.abspath(os.path.expanduser(path))
        self.key = key
        self._degraded = False
        self._memory: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self._degraded

    def _read(self) -> Dict[str, Any]:
        try:
            raw = Path(self.path).read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning(f"Credential file unreadable ({self.path}): {e}")
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning(f"Credential file is not valid JSON, ignoring: {self.path}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(self.path)
        Path(directory).mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".session-", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except OSError:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    def get(self) -> Optional[str]:
        if self._degraded:
            return self._memory
        value = self._read().get(self.key)
        return value if isinstance(value, str) and value else None

    def set(self, token: str) -> None:
        if self._degraded:
            self._memory = token
            return
        data = self._read()
        data[self.key] = token
        try:
            self._write(data)
        except OSError as e:
            logger.warning(f"Credential file not writable, keeping token in memory only: {e}")
            self._degraded = True
            self._memory = token

    def clear(self) -> None:
        if self._degraded:
            self._memory = None
            return
        data = self._read()
        if self.key not in data:
            return
        data.pop(self.key, None)
        try:
            if data:
                self._write(data)
            else:
                os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Credential file not writable, clearing in memory only: {e}")
            self._degraded = True
            self._memory = None
