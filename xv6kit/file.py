"""Open files: a shared table of reference-counted file objects."""

from __future__ import annotations

import enum
import errno
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

from .fs import FileSystem, Inode, Stat
from .layout import BSIZE
from .log import Log

if TYPE_CHECKING:
    from .pipe import Pipe


class FileType(enum.Enum):
    """What an open file refers to."""

    NONE = 0
    PIPE = 1
    INODE = 2


@dataclass(eq=False)
class File:
    """One open file: a pipe end or an inode with a current offset."""

    type: FileType = FileType.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Optional["Pipe"] = None
    ip: Optional[Inode] = None
    off: int = 0


class FileTable:
    """A fixed pool of open files shared by every process."""

    def __init__(self, fs: Optional[FileSystem], nfile: int):
        if nfile < 1:
            raise ValueError("the file table needs at least one slot")
        self._fs = fs
        # Inode writes and releases run inside transactions of the file system's log.
        self._log: Optional[Log] = fs._log if fs is not None else None
        self.files: Tuple[File, ...] = tuple(File() for _ in range(nfile))

    def _inode_access(self) -> Tuple[FileSystem, Log]:
        if self._fs is None or self._log is None:
            raise RuntimeError("file table has no file system")
        return self._fs, self._log

    def alloc(self) -> File:
        """Take a free slot and return it with one reference."""
        for f in self.files:
            if f.ref == 0:
                f.type = FileType.NONE
                f.readable = False
                f.writable = False
                f.pipe = None
                f.ip = None
                f.off = 0
                f.ref = 1
                return f
        raise OSError(errno.ENFILE, "file table full")

    def dup(self, f: File) -> File:
        """Take another reference to ``f``."""
        if f.ref < 1:
            raise RuntimeError("filedup")
        f.ref += 1
        return f

    def close(self, f: File) -> None:
        """Drop a reference; on the last one release the pipe end or inode."""
        if f.ref < 1:
            raise RuntimeError("fileclose")
        f.ref -= 1
        if f.ref > 0:
            return
        ftype, pipe, ip, writable = f.type, f.pipe, f.ip, f.writable
        f.type = FileType.NONE
        if ftype is FileType.PIPE and pipe is not None:
            pipe.close(writable)
        elif ftype is FileType.INODE and ip is not None:
            fs, log = self._inode_access()
            with log.transaction():
                fs.iput(ip)

    def stat(self, f: File) -> Stat:
        """Metadata of the inode behind ``f``."""
        if f.type is not FileType.INODE or f.ip is None:
            raise ValueError("only inode files have metadata")
        fs, _ = self._inode_access()
        fs.ilock(f.ip)
        try:
            return fs.stati(f.ip)
        finally:
            fs.iunlock(f.ip)

    def read(self, f: File, n: int) -> bytes:
        """Read up to ``n`` bytes from ``f``, advancing its offset."""
        if not f.readable:
            raise PermissionError("file not open for reading")
        if f.type is FileType.PIPE and f.pipe is not None:
            return f.pipe.read(n)
        if f.type is FileType.INODE and f.ip is not None:
            fs, _ = self._inode_access()
            fs.ilock(f.ip)
            try:
                data = fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                fs.iunlock(f.ip)
            return data
        raise RuntimeError("fileread")

    def write(self, f: File, data: bytes) -> int:
        """Write ``data`` to ``f``; inode writes go in log-sized pieces."""
        if not f.writable:
            raise PermissionError("file not open for writing")
        data = bytes(data)
        if f.type is FileType.PIPE and f.pipe is not None:
            return f.pipe.write(data)
        if f.type is FileType.INODE and f.ip is not None:
            fs, log = self._inode_access()
            # Room for the inode, an indirect block, two allocation blocks
            # and two blocks of slop for unaligned writes.
            max_chunk = ((log.maxopblocks - 1 - 1 - 2) // 2) * BSIZE
            if max_chunk <= 0:
                raise ValueError("log transactions too small for writes")
            written = 0
            while written < len(data):
                chunk = data[written:written + max_chunk]
                with log.transaction():
                    fs.ilock(f.ip)
                    try:
                        r = fs.writei(f.ip, chunk, f.off)
                        f.off += r
                    finally:
                        fs.iunlock(f.ip)
                if r != len(chunk):
                    raise RuntimeError("short filewrite")
                written += r
            return len(data)
        raise RuntimeError("filewrite")