"""Buffer cache: in-memory copies of disk blocks kept in most-recently-used order."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Protocol, Tuple

from .layout import BSIZE


class BufFlag(enum.IntFlag):
    """State of a cached block."""

    NONE = 0
    VALID = 1
    DIRTY = 2


@dataclass(eq=False)
class Buf:
    """One cached disk block."""

    dev: int = 0
    blockno: int = 0
    flags: BufFlag = BufFlag.NONE
    refcnt: int = 0
    locked: bool = False
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))


class _Disk(Protocol):
    def rw(self, buf: Buf) -> None: ...


class BufferCache:
    """A fixed pool of buffers; recycles the least recently used free one."""

    def __init__(self, disk: _Disk, nbuf: int):
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self._disk = disk
        self._mru: List[Buf] = [Buf() for _ in range(nbuf)]

    @property
    def buffers(self) -> Tuple[Buf, ...]:
        """All buffers, most recently used first."""
        return tuple(self._mru)

    def _get(self, dev: int, blockno: int) -> Buf:
        for b in self._mru:
            if b.dev == dev and b.blockno == blockno:
                if b.locked:
                    raise RuntimeError(f"bget: block {blockno} is already locked")
                b.refcnt += 1
                b.locked = True
                return b

        # A dirty buffer is still in use by the log even with no references.
        for b in reversed(self._mru):
            if b.refcnt == 0 and not b.flags & BufFlag.DIRTY:
                b.dev = dev
                b.blockno = blockno
                b.flags = BufFlag.NONE
                b.refcnt = 1
                b.locked = True
                return b
        raise RuntimeError("bget: no buffers")

    def read(self, dev: int, blockno: int) -> Buf:
        """Return a locked buffer holding the contents of the block."""
        b = self._get(dev, blockno)
        if not b.flags & BufFlag.VALID:
            self._disk.rw(b)
        return b

    def write(self, buf: Buf) -> None:
        """Write a locked buffer's contents to disk."""
        if not buf.locked:
            raise RuntimeError("bwrite")
        buf.flags |= BufFlag.DIRTY
        self._disk.rw(buf)

    def release(self, buf: Buf) -> None:
        """Unlock a buffer; once unreferenced it becomes the most recently used."""
        if not buf.locked:
            raise RuntimeError("brelse")
        buf.locked = False
        buf.refcnt -= 1
        if buf.refcnt == 0:
            self._mru.remove(buf)
            self._mru.insert(0, buf)