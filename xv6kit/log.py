"""Write-ahead redo log that makes groups of block writes atomic."""

from __future__ import annotations

import struct
from contextlib import contextmanager
from typing import Iterator, List, Tuple

from .bufcache import Buf, BufferCache, BufFlag
from .layout import BSIZE, Superblock

_COUNT = struct.Struct("<i")


class Log:
    """The on-disk log: a header block listing block numbers, then their copies.

    Operations run between begin_op and end_op; when the last outstanding
    operation ends, the logged blocks are committed.
    """

    def __init__(
        self,
        cache: BufferCache,
        dev: int,
        sb: Superblock,
        logsize: int,
        maxopblocks: int,
    ):
        if _COUNT.size * (logsize + 1) >= BSIZE:
            raise ValueError("initlog: too big logheader")
        self._cache = cache
        self.dev = dev
        self.start = sb.logstart
        self.size = sb.nlog
        self.logsize = logsize
        self.maxopblocks = maxopblocks
        self.outstanding = 0
        self.committing = False
        self._blocks: List[int] = []
        self._recover()

    @property
    def blocks(self) -> Tuple[int, ...]:
        """Block numbers logged in the current transaction."""
        return tuple(self._blocks)

    @contextmanager
    def _block(self, blockno: int) -> Iterator[Buf]:
        buf = self._cache.read(self.dev, blockno)
        try:
            yield buf
        finally:
            self._cache.release(buf)

    def _read_head(self) -> None:
        with self._block(self.start) as buf:
            (n,) = _COUNT.unpack_from(buf.data, 0)
            if not 0 <= n <= self.logsize:
                raise ValueError(f"corrupt log header: {n} blocks")
            self._blocks = list(struct.unpack_from(f"<{n}i", buf.data, _COUNT.size))

    def _write_head(self) -> None:
        with self._block(self.start) as buf:
            n = len(self._blocks)
            struct.pack_into(f"<i{n}i", buf.data, 0, n, *self._blocks)
            self._cache.write(buf)

    def _install_trans(self) -> None:
        for tail, home in enumerate(self._blocks):
            with self._block(self.start + tail + 1) as lbuf, self._block(home) as dbuf:
                dbuf.data[:] = lbuf.data
                self._cache.write(dbuf)

    def _write_log(self) -> None:
        for tail, home in enumerate(self._blocks):
            with self._block(self.start + tail + 1) as to, self._block(home) as src:
                to.data[:] = src.data
                self._cache.write(to)

    def _recover(self) -> None:
        self._read_head()
        self._install_trans()
        self._blocks = []
        self._write_head()

    def _commit(self) -> None:
        if self._blocks:
            self._write_log()
            self._write_head()
            self._install_trans()
            self._blocks = []
            self._write_head()

    def begin_op(self) -> None:
        """Start a file system operation, reserving room for its blocks."""
        if self.committing:
            raise RuntimeError("begin_op: commit in progress")
        if len(self._blocks) + (self.outstanding + 1) * self.maxopblocks > self.logsize:
            raise RuntimeError("begin_op: log space exhausted")
        self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; commit if it was the last outstanding one."""
        if self.outstanding < 1:
            raise RuntimeError("end_op outside of transaction")
        if self.committing:
            raise RuntimeError("log.committing")
        self.outstanding -= 1
        if self.outstanding == 0:
            self.committing = True
            try:
                self._commit()
            finally:
                self.committing = False

    def write(self, buf: Buf) -> None:
        """Record a modified buffer in the log and pin it in the cache."""
        if len(self._blocks) >= self.logsize or len(self._blocks) >= self.size - 1:
            raise RuntimeError("too big a transaction")
        if self.outstanding < 1:
            raise RuntimeError("log_write outside of trans")
        if buf.blockno not in self._blocks:
            self._blocks.append(buf.blockno)
        buf.flags |= BufFlag.DIRTY

    @contextmanager
    def transaction(self) -> Iterator["Log"]:
        """Run the enclosed block as one operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()