"""Pipes: a bounded byte buffer with one read end and one write end."""

from __future__ import annotations

import threading
from typing import Tuple

from .file import File, FileTable, FileType

PIPESIZE = 512


class Pipe:
    """A ring buffer of PIPESIZE bytes; writers block when full, readers when empty."""

    def __init__(self):
        self._data = bytearray(PIPESIZE)
        self._cond = threading.Condition()
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True

    def write(self, data: bytes) -> int:
        """Write all of ``data``, waiting for room; fail once the read end is closed."""
        data = bytes(data)
        with self._cond:
            for byte in data:
                while self.nwrite == self.nread + PIPESIZE:
                    if not self.readopen:
                        raise BrokenPipeError("pipe read end closed")
                    self._cond.notify_all()
                    self._cond.wait()
                self._data[self.nwrite % PIPESIZE] = byte
                self.nwrite += 1
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, waiting while empty and the write end is open."""
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                self._cond.wait()
            out = bytearray()
            while len(out) < n and self.nread != self.nwrite:
                out.append(self._data[self.nread % PIPESIZE])
                self.nread += 1
            self._cond.notify_all()
        return bytes(out)

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable``, else the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()


def pipe_alloc(table: FileTable) -> Tuple[File, File]:
    """Create a pipe and return its (read end, write end) files."""
    reader = table.alloc()
    try:
        writer = table.alloc()
    except OSError:
        table.close(reader)
        raise
    p = Pipe()
    reader.type = FileType.PIPE
    reader.readable = True
    reader.writable = False
    reader.pipe = p
    writer.type = FileType.PIPE
    writer.readable = False
    writer.writable = True
    writer.pipe = p
    return reader, writer