"""On-disk file system layout: superblock, inodes and directory entries."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import List, Union

ROOTINO = 1
BSIZE = 512
NDIRECT = 12
NINDIRECT = BSIZE // 4
MAXFILE = NDIRECT + NINDIRECT
DIRSIZ = 14
CONSOLE = 1

_SUPERBLOCK = struct.Struct("<7I")
_DINODE = struct.Struct(f"<4hI{NDIRECT + 1}I")
_DIRENT = struct.Struct(f"<H{DIRSIZ}s")

DINODE_SIZE = _DINODE.size
DIRENT_SIZE = _DIRENT.size
IPB = BSIZE // DINODE_SIZE
BPB = BSIZE * 8


class InodeType(enum.IntEnum):
    """Kind of object an inode describes; zero marks a free inode."""

    FREE = 0
    DIR = 1
    FILE = 2
    DEV = 3


def _unpack(layout: struct.Struct, data: bytes, what: str) -> tuple:
    if len(data) < layout.size:
        raise ValueError(f"{what} needs {layout.size} bytes, got {len(data)}")
    return layout.unpack_from(data)


@dataclass
class Superblock:
    """Describes where each region of the disk begins."""

    size: int = 0
    nblocks: int = 0
    ninodes: int = 0
    nlog: int = 0
    logstart: int = 0
    inodestart: int = 0
    bmapstart: int = 0

    def pack(self) -> bytes:
        return _SUPERBLOCK.pack(
            self.size, self.nblocks, self.ninodes, self.nlog,
            self.logstart, self.inodestart, self.bmapstart,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "Superblock":
        return cls(*_unpack(_SUPERBLOCK, data, "superblock"))


@dataclass
class DiskInode:
    """An inode as stored on disk."""

    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: List[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))

    def pack(self) -> bytes:
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"an inode holds exactly {NDIRECT + 1} block addresses")
        return _DINODE.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def unpack(cls, data: bytes) -> "DiskInode":
        itype, major, minor, nlink, size, *addrs = _unpack(_DINODE, data, "inode")
        return cls(itype, major, minor, nlink, size, list(addrs))


def _name_bytes(name: Union[str, bytes]) -> bytes:
    raw = name.encode("utf-8", "surrogateescape") if isinstance(name, str) else bytes(name)
    return raw.split(b"\0", 1)[0][:DIRSIZ]


@dataclass
class Dirent:
    """One directory entry: an inode number and a name of up to DIRSIZ bytes."""

    inum: int = 0
    name: str = ""

    def pack(self) -> bytes:
        return _DIRENT.pack(self.inum, _name_bytes(self.name))

    @classmethod
    def unpack(cls, data: bytes) -> "Dirent":
        inum, raw = _unpack(_DIRENT, data, "directory entry")
        return cls(inum, raw.split(b"\0", 1)[0].decode("utf-8", "surrogateescape"))


def iblock(inum: int, sb: Superblock) -> int:
    """Block holding inode ``inum``."""
    return inum // IPB + sb.inodestart


def bblock(b: int, sb: Superblock) -> int:
    """Bitmap block holding the bit for block ``b``."""
    return b // BPB + sb.bmapstart


def namecmp(s: Union[str, bytes], t: Union[str, bytes]) -> int:
    """Compare two names over their first DIRSIZ bytes, like strncmp."""
    a, b = _name_bytes(s), _name_bytes(t)
    return (a > b) - (a < b)