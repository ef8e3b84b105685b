"""
File-backed Local Storage

DESIGN DECISION: One file per key.
1. A write replaces exactly one file (temp file + os.replace), so every
   key is atomic on its own and a crash mid-batch cannot corrupt
   neighbouring keys
2. list_keys is a directory listing, no index file to keep consistent
3. Users (and support) can inspect state with any text editor

All file I/O goes through aiofiles so a slow disk never stalls the
event loop (and with it any pending debounce timers).

TRADEOFFS:
- Many small files (we're fine - a handful of keys per user)
- Batches are not atomic across keys (documented on LocalBackend)
"""

import asyncio
import os
import uuid
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote

import aiofiles
import aiofiles.os
import structlog

from budgetkeep.services.storage.interface import IOFailure, LocalBackend


FILE_SUFFIX = ".json"
TEMP_PREFIX = ".tmp-"

logger = structlog.get_logger(__name__)


def encode_file_name(key: str) -> str:
    """
    Map a key to a file name that is unique even on case-insensitive
    filesystems.

    Characters are URL-quoted, and ASCII capitals are quoted as well, so
    the only letters left in a name are lowercase ones or the uppercase
    hex digits of an escape. "Bob" and "bob" become "%42ob" and "bob".
    """
    return "".join(
        f"%{ord(ch):02X}" if "A" <= ch <= "Z" else quote(ch, safe="")
        for ch in key
    ) + FILE_SUFFIX


def decode_file_name(name: str) -> str:
    return unquote(name[: -len(FILE_SUFFIX)])


class FileLocalBackend(LocalBackend):
    """
    Local key/value storage in a directory.

    Keys may contain any character (":" and "@" appear in the common
    keys); see encode_file_name for the mapping.
    """

    def __init__(self, storage_dir: Path):
        self._dir = Path(storage_dir)

    @property
    def storage_dir(self) -> Path:
        return self._dir

    def _path_for(self, key: str) -> Path:
        return self._dir / encode_file_name(key)

    async def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as handle:
                return await handle.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise IOFailure(f"Failed to read {key}: {e}") from e

    async def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        tmp_path = self._dir / f"{TEMP_PREFIX}{uuid.uuid4().hex}{FILE_SUFFIX}"
        try:
            await aiofiles.os.makedirs(self._dir, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as handle:
                await handle.write(value)
                await handle.flush()
                await asyncio.to_thread(os.fsync, handle.fileno())
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            await self._discard(tmp_path)
            raise IOFailure(f"Failed to write {key}: {e}") from e

    async def _discard(self, tmp_path: Path) -> None:
        try:
            await aiofiles.os.remove(tmp_path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("temp_file_cleanup_failed", path=str(tmp_path))

    async def remove(self, key: str) -> None:
        try:
            await aiofiles.os.remove(self._path_for(key))
        except FileNotFoundError:
            return
        except OSError as e:
            raise IOFailure(f"Failed to remove {key}: {e}") from e

    async def clear(self) -> None:
        keys = await self.list_keys()
        logger.warning("local_storage_clear", key_count=len(keys), storage_dir=str(self._dir))
        await self.multi_remove(keys)

    async def list_keys(self) -> list[str]:
        try:
            entries = await aiofiles.os.listdir(self._dir)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise IOFailure(f"Failed to list {self._dir}: {e}") from e
        names = sorted(
            name
            for name in entries
            if name.endswith(FILE_SUFFIX) and not name.startswith(TEMP_PREFIX)
        )
        return [decode_file_name(name) for name in names]
