from __future__ import annotations

import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO


class MediaStorageError(RuntimeError):
    pass


class Storage:
    def put_bytes(self, key: str, data: bytes) -> None:
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path

    def _path(self, key: str) -> Path:
        safe_key = key.lstrip("/").replace("\\", "/")
        p = (self.root / safe_key).resolve()
        if self.root.resolve() not in p.parents:
            raise MediaStorageError(f"Key escapes storage root: {key!r}")
        return p

    def put_bytes(self, key: str, data: bytes) -> None:
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)

    def open(self, key: str) -> BinaryIO:
        return self._path(key).open("rb")

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def probe_storage(storage: Storage) -> None:
    """
    Write, read back and delete a random probe file. Raises MediaStorageError
    if any step fails or the bytes read back differ.
    """
    key = f"cms-probe-{secrets.token_hex(8)}.txt"
    data = secrets.token_bytes(32)
    try:
        storage.put_bytes(key, data)
        try:
            with storage.open(key) as fh:
                got = fh.read()
        finally:
            storage.delete(key)
    except OSError as e:
        raise MediaStorageError(f"Media directory is not usable: {e}") from e
    if got != data:
        raise MediaStorageError("Media directory returned different bytes than were written")
    if storage.exists(key):
        raise MediaStorageError("Probe file could not be removed")
