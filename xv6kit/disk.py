"""A disk whose blocks live in memory instead of on a drive."""

from __future__ import annotations

from typing import Union

from .bufcache import Buf, BufFlag
from .layout import BSIZE


class MemoryDisk:
    """Holds a whole file system image in memory and serves block requests."""

    def __init__(self, image: Union[bytes, bytearray], dev: int = 1):
        self._image = bytearray(image)
        self.dev = dev
        self.nblocks = len(self._image) // BSIZE

    @property
    def image(self) -> bytes:
        """A copy of the current image contents."""
        return bytes(self._image)

    def rw(self, buf: Buf) -> None:
        """Sync ``buf`` with the disk.

        A dirty buffer is written and marked clean; otherwise the block is
        read into it. Either way the buffer ends up valid.
        """
        if not buf.locked:
            raise RuntimeError("iderw: buf not locked")
        if buf.flags & (BufFlag.VALID | BufFlag.DIRTY) == BufFlag.VALID:
            raise RuntimeError("iderw: nothing to do")
        if buf.dev != self.dev:
            raise ValueError(f"iderw: request not for disk {self.dev}")
        if not 0 <= buf.blockno < self.nblocks:
            raise IndexError(f"iderw: block {buf.blockno} out of range")

        start = buf.blockno * BSIZE
        if buf.flags & BufFlag.DIRTY:
            buf.flags &= ~BufFlag.DIRTY
            self._image[start:start + BSIZE] = bytes(buf.data[:BSIZE]).ljust(BSIZE, b"\0")
        else:
            buf.data[:] = self._image[start:start + BSIZE]
        buf.flags |= BufFlag.VALID