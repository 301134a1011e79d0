from __future__ import annotations

import os
import typing as tp
import uuid
from pathlib import Path

import anyio

__all__ = ("AsyncFileManager", "FileManager")


def _temporary_path(path: Path) -> Path:
    return path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")


class AsyncFileManager:
    async def write_to(self, path: Path, data: bytes) -> None:
        async with await anyio.open_file(path, "wb") as f:
            await f.write(data)

    async def read_from(self, path: Path) -> bytes:
        async with await anyio.open_file(path, "rb") as f:
            return tp.cast(bytes, await f.read())

    async def publish(self, path: Path, data: bytes) -> None:
        """
        Write ``data`` so that ``path`` appears complete or not at all.

        The data goes to a temporary sibling first, which is then renamed over ``path``.
        """
        temporary = _temporary_path(path)
        try:
            await self.write_to(temporary, data)
            os.replace(temporary, path)
        except BaseException:
            temporary.unlink(missing_ok=True)
            raise


class FileManager:
    def write_to(self, path: Path, data: bytes) -> None:
        with open(path, "wb") as f:
            f.write(data)

    def read_from(self, path: Path) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def publish(self, path: Path, data: bytes) -> None:
        """
        Write ``data`` so that ``path`` appears complete or not at all.

        The data goes to a temporary sibling first, which is then renamed over ``path``.
        """
        temporary = _temporary_path(path)
        try:
            self.write_to(temporary, data)
            os.replace(temporary, path)
        except BaseException:
            temporary.unlink(missing_ok=True)
            raise
