"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: storage/file.py.
"""

from __future__ import annotations

import errno
import json
import logging
import os
from pathlib import Path

from .base import KeyValueStore, StorageError, StorageQuotaError

logger = logging.getLogger("tether.storage")


class JsonFileStore(KeyValueStore):
    """
    Durable store persisting all keys into one JSON document on disk.

    The document is loaded once and rewritten atomically on every mutation.
    Several processes sharing one path overwrite each other (last write wins).
    """

    store_id = "file"

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._rows: dict[str, str] = self._read()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to read store file %s; starting empty", self._path)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Store file %s is not a JSON object; ignoring", self._path)
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _flush(self) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(
                json.dumps(self._rows, ensure_ascii=True, sort_keys=True),
                encoding="utf-8",
            )
            os.replace(tmp, self._path)
        except OSError as exc:
            if exc.errno in (errno.ENOSPC, errno.EDQUOT):
                raise StorageQuotaError(f"No space left writing {self._path}") from exc
            raise StorageError(f"Failed to write {self._path}: {exc}") from exc

    def get_item(self, key: str) -> str | None:
        return self._rows.get(key)

    def set_item(self, key: str, value: str) -> None:
        previous = self._rows.get(key)
        self._rows[key] = value
        try:
            self._flush()
        except StorageError:
            if previous is None:
                self._rows.pop(key, None)
            else:
                self._rows[key] = previous
            raise

    def remove_item(self, key: str) -> None:
        if self._rows.pop(key, None) is not None:
            self._flush()
