"""
Local Store Implementations

The local store is the fallback of last resort: it backs anonymous (demo)
mode and must never crash a caller. Partial data beats an exception.

Values are stored as JSON text, one document per key, mirroring a browser
profile's key-value storage.
"""

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Optional

import structlog

from finnko.services.storage.interface import LocalStoreInterface


logger = structlog.get_logger(__name__)

_VALID_KEY = re.compile(r"^[A-Za-z0-9_.:-]+$")


class FileLocalStore(LocalStoreInterface):
    """
    Directory-backed store: <directory>/<key>.json.

    Writes go to a temporary file first and are moved into place, so a crash
    mid-write leaves the previous document intact.
    """

    def __init__(self, directory: Path):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path_for(self, key: str) -> Optional[Path]:
        if not _VALID_KEY.match(key):
            logger.warning("local_store_invalid_key", key=key)
            return None
        return self._directory / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path_for(key)
        if path is None:
            return default
        try:
            if not path.exists():
                return default
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as e:
            # ValueError covers JSONDecodeError and UnicodeDecodeError
            logger.warning(
                "local_store_read_failed",
                key=key,
                path=str(path),
                error=str(e),
            )
            return default

    def set(self, key: str, value: Any) -> bool:
        path = self._path_for(key)
        if path is None:
            return False
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error("local_store_serialize_failed", key=key, error=str(e))
            return False

        tmp_name = None
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._directory,
                prefix=f".{key}.",
                suffix=".tmp",
                delete=False,
            ) as fh:
                tmp_name = fh.name
                fh.write(payload)
            os.replace(tmp_name, path)
            tmp_name = None
            return True
        except OSError as e:
            logger.error(
                "local_store_write_failed",
                key=key,
                path=str(path),
                error=str(e),
            )
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def remove(self, key: str) -> None:
        path = self._path_for(key)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("local_store_remove_failed", key=key, error=str(e))


class MemoryLocalStore(LocalStoreInterface):
    """
    Process-local store.

    Values are kept as JSON text so callers always get fresh copies and
    unserializable values are rejected the same way FileLocalStore rejects them.
    """

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning("local_store_read_failed", key=key, error=str(e))
            return default

    def set(self, key: str, value: Any) -> bool:
        try:
            self._data[key] = json.dumps(value, ensure_ascii=False)
            return True
        except (TypeError, ValueError) as e:
            logger.error("local_store_serialize_failed", key=key, error=str(e))
            return False

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)
