"""
File-based context store

Keeps one file per key in a directory, so processes on the same host can
share concurrency accounting without running a server.
"""

import contextlib
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote

from .base import ContextStore, StoreConnectionError

_SUFFIX = ".json"


class FileStore(ContextStore):
    """
    Directory-backed store

    Features:
    - Atomic writes (temp file + rename), readers never see partial entries
    - Keys are percent-encoded into file names
    """

    def __init__(self, path: str = ".throttlekit"):
        self.path = Path(path)
        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreConnectionError(f"Cannot create store directory {path}: {e}") from e

    def _file_for(self, key: str) -> Path:
        return self.path / (quote(key, safe="") + _SUFFIX)

    def get(self, key: str) -> Optional[str]:
        try:
            return self._file_for(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreConnectionError(f"Failed to read {key}: {e}") from e

    def set(self, key: str, value: str) -> None:
        target = self._file_for(key)
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.path, prefix=".tmp-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(tmp_path, target)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StoreConnectionError(f"Failed to write {key}: {e}") from e

    def remove(self, key: str) -> bool:
        try:
            self._file_for(key).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StoreConnectionError(f"Failed to remove {key}: {e}") from e

    def keys(self) -> Iterable[str]:
        try:
            names = os.listdir(self.path)
        except OSError as e:
            raise StoreConnectionError(f"Failed to list {self.path}: {e}") from e

        return [
            unquote(name[: -len(_SUFFIX)])
            for name in names
            if name.endswith(_SUFFIX) and not name.startswith(".tmp-")
        ]