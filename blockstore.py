"""
blockstore.py — Block-level access to a disk image file.

Nothing is cached: every call seeks and reads or writes the backing
file directly, so a directory update is on disk as soon as
write_block() returns.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO

from rt11errors import IoFault

BLOCK_SIZE = 512


class BlockStore:
    """Random-access 512-byte block I/O over a seekable binary file."""

    def __init__(self, fileobj: BinaryIO, path: str | Path | None = None):
        self._f = fileobj
        self.path = path
        try:
            self._f.seek(0, os.SEEK_END)
            size = self._f.tell()
        except OSError as e:
            raise IoFault(None, f"Cannot determine image size: {e}") from e
        if size <= 0:
            raise IoFault(None, "Disk image is empty")
        if size % BLOCK_SIZE:
            raise IoFault(None, f"Image size {size} is not a multiple "
                                f"of {BLOCK_SIZE} bytes")
        self.total_blocks = size // BLOCK_SIZE

    @classmethod
    def open(cls, path: str | Path, writable: bool = False) -> "BlockStore":
        """Open an image file for block I/O."""
        try:
            f = open(path, "r+b" if writable else "rb")
        except OSError as e:
            raise IoFault(None, f"Cannot open disk image {path}: {e}") from e
        try:
            return cls(f, path)
        except IoFault:
            f.close()
            raise

    # ── block I/O ──────────────────────────────────────────────────

    def read_block(self, n: int) -> bytes:
        if n < 0 or n >= self.total_blocks:
            raise IoFault(n, f"read beyond volume ({self.total_blocks} blocks)")
        try:
            self._f.seek(n * BLOCK_SIZE)
            data = self._f.read(BLOCK_SIZE)
        except OSError as e:
            raise IoFault(n, f"read failed: {e}") from e
        if data is None or len(data) != BLOCK_SIZE:
            raise IoFault(n, "short read")
        return bytes(data)

    def write_block(self, n: int, data: bytes | bytearray):
        if len(data) != BLOCK_SIZE:
            raise IoFault(n, f"write buffer is {len(data)} bytes, "
                             f"expected {BLOCK_SIZE}")
        if n < 0 or n >= self.total_blocks:
            raise IoFault(n, f"write beyond volume ({self.total_blocks} blocks)")
        try:
            self._f.seek(n * BLOCK_SIZE)
            self._f.write(data)
        except OSError as e:
            raise IoFault(n, f"write failed: {e}") from e

    def read_blocks(self, start: int, count: int) -> bytes:
        """Read *count* consecutive blocks starting at *start*."""
        return b"".join(self.read_block(start + i) for i in range(count))

    # ── lifetime ───────────────────────────────────────────────────

    def flush(self):
        try:
            self._f.flush()
        except OSError as e:
            raise IoFault(None, f"flush failed: {e}") from e

    def close(self):
        if not self._f.closed:
            self.flush()
            self._f.close()

    def __enter__(self) -> "BlockStore":
        return self

    def __exit__(self, *exc):
        self.close()
