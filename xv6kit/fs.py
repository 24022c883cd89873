"""File system: block allocation, inodes, directories and path names."""

from __future__ import annotations

import struct
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Protocol, Tuple

from .bufcache import Buf, BufferCache
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    Dirent,
    DiskInode,
    InodeType,
    Superblock,
    bblock,
    iblock,
    namecmp,
)
from .log import Log

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


@dataclass
class Stat:
    """Metadata about an inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode plus cache bookkeeping."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    locked: bool = False
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: List[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))


class Device(Protocol):
    def read(self, ip: Inode, n: int) -> bytes: ...

    def write(self, ip: Inode, data: bytes) -> int: ...


def skipelem(path: str) -> Optional[Tuple[str, str]]:
    """Split off the first element of ``path``.

    Returns ``(name, rest)`` where ``rest`` has no leading slashes, or None
    when there is no element left. Names are cut to DIRSIZ bytes.
    """
    path = path.lstrip("/")
    if not path:
        return None
    name, _, rest = path.partition("/")
    raw = name.encode("utf-8", "surrogateescape")
    if len(raw) > DIRSIZ:
        name = raw[:DIRSIZ].decode("utf-8", "surrogateescape")
    return name, rest.lstrip("/")


class FileSystem:
    """Inode-level access to a file system on one device."""

    def __init__(self, cache: BufferCache, log: Log, dev: int, ninode: int):
        if ninode < 1:
            raise ValueError("the inode cache needs at least one slot")
        self._cache = cache
        self._log = log
        self.dev = dev
        self._icache: List[Inode] = [Inode() for _ in range(ninode)]
        self.devsw: Dict[int, Device] = {}
        with self._block(1) as bp:
            self.superblock = Superblock.unpack(bytes(bp.data))

    @contextmanager
    def _block(self, blockno: int) -> Iterator[Buf]:
        buf = self._cache.read(self.dev, blockno)
        try:
            yield buf
        finally:
            self._cache.release(buf)

    # Blocks.

    def _bzero(self, blockno: int) -> None:
        with self._block(blockno) as bp:
            bp.data[:] = bytes(BSIZE)
            self._log.write(bp)

    def _balloc(self) -> int:
        size = self.superblock.size
        for b in range(0, size, BPB):
            found = None
            with self._block(bblock(b, self.superblock)) as bp:
                for bi in range(min(BPB, size - b)):
                    m = 1 << (bi % 8)
                    if not bp.data[bi // 8] & m:
                        bp.data[bi // 8] |= m
                        self._log.write(bp)
                        found = b + bi
                        break
            if found is not None:
                self._bzero(found)
                return found
        raise RuntimeError("balloc: out of blocks")

    def _bfree(self, b: int) -> None:
        with self._block(bblock(b, self.superblock)) as bp:
            bi = b % BPB
            m = 1 << (bi % 8)
            if not bp.data[bi // 8] & m:
                raise RuntimeError("freeing free block")
            bp.data[bi // 8] &= ~m & 0xFF
            self._log.write(bp)

    # Inodes.

    def _dinode_offset(self, inum: int) -> int:
        return (inum % IPB) * DINODE_SIZE

    def ialloc(self, itype: InodeType) -> Inode:
        """Allocate a free inode on disk; return it referenced but unlocked."""
        for inum in range(1, self.superblock.ninodes):
            off = self._dinode_offset(inum)
            with self._block(iblock(inum, self.superblock)) as bp:
                dip = DiskInode.unpack(bytes(bp.data[off:off + DINODE_SIZE]))
                if dip.type != 0:
                    continue
                bp.data[off:off + DINODE_SIZE] = DiskInode(type=int(itype)).pack()
                self._log.write(bp)
            return self.iget(inum)
        raise RuntimeError("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a modified in-memory inode to disk."""
        off = self._dinode_offset(ip.inum)
        dip = DiskInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
        with self._block(iblock(ip.inum, self.superblock)) as bp:
            bp.data[off:off + DINODE_SIZE] = dip.pack()
            self._log.write(bp)

    def iget(self, inum: int) -> Inode:
        """Return the cached inode for ``inum``, taking a reference; no disk read."""
        empty = None
        for ip in self._icache:
            if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                ip.ref += 1
                return ip
            if empty is None and ip.ref == 0:
                empty = ip
        if empty is None:
            raise RuntimeError("iget: no inodes")
        empty.dev = self.dev
        empty.inum = inum
        empty.ref = 1
        empty.valid = False
        return empty

    def idup(self, ip: Inode) -> Inode:
        """Take another reference to ``ip``."""
        ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock ``ip``, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise RuntimeError("ilock")
        if ip.locked:
            raise RuntimeError(f"ilock: inode {ip.inum} is already locked")
        ip.locked = True
        if not ip.valid:
            off = self._dinode_offset(ip.inum)
            with self._block(iblock(ip.inum, self.superblock)) as bp:
                dip = DiskInode.unpack(bytes(bp.data[off:off + DINODE_SIZE]))
            ip.type, ip.major, ip.minor = dip.type, dip.major, dip.minor
            ip.nlink, ip.size, ip.addrs = dip.nlink, dip.size, list(dip.addrs)
            ip.valid = True
            if ip.type == 0:
                ip.locked = False
                raise RuntimeError("ilock: no type")

    def iunlock(self, ip: Inode) -> None:
        """Unlock ``ip``."""
        if ip is None or not ip.locked or ip.ref < 1:
            raise RuntimeError("iunlock")
        ip.locked = False

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        if ip.locked:
            raise RuntimeError("iput: inode is locked")
        if ip.ref < 1:
            raise RuntimeError("iput: no references")
        if ip.valid and ip.nlink == 0 and ip.ref == 1:
            ip.locked = True
            try:
                self._itrunc(ip)
                ip.type = 0
                self.iupdate(ip)
                ip.valid = False
            finally:
                ip.locked = False
        ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        """Unlock, then drop a reference."""
        self.iunlock(ip)
        self.iput(ip)

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc()
            with self._block(ip.addrs[NDIRECT]) as bp:
                table = list(_INDIRECT.unpack(bytes(bp.data)))
                if table[bn] == 0:
                    table[bn] = self._balloc()
                    bp.data[:] = _INDIRECT.pack(*table)
                    self._log.write(bp)
                return table[bn]
        raise ValueError("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self._bfree(ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self._block(ip.addrs[NDIRECT]) as bp:
                table = _INDIRECT.unpack(bytes(bp.data))
            for addr in table:
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Metadata of ``ip``."""
        return Stat(ip.dev, ip.inum, ip.type, ip.nlink, ip.size)

    def _device(self, ip: Inode) -> Device:
        device = self.devsw.get(ip.major)
        if device is None:
            raise ValueError(f"no device with major number {ip.major}")
        return device

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off``; stops at end of file."""
        if ip.type == InodeType.DEV:
            return bytes(self._device(ip).read(ip, n))
        if off < 0 or n < 0 or off > ip.size:
            raise ValueError(f"read at {off} outside file of size {ip.size}")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            with self._block(self._bmap(ip, off // BSIZE)) as bp:
                start = off % BSIZE
                m = min(n - len(out), BSIZE - start)
                out += bp.data[start:start + m]
            off += m
        return bytes(out)

    def writei(self, ip: Inode, data: bytes, off: int) -> int:
        """Write ``data`` at ``off``, growing the file; return bytes written."""
        data = bytes(data)
        if ip.type == InodeType.DEV:
            return self._device(ip).write(ip, data)
        n = len(data)
        if off < 0 or off > ip.size:
            raise ValueError(f"write at {off} outside file of size {ip.size}")
        if off + n > MAXFILE * BSIZE:
            raise ValueError("write past maximum file size")
        pos = 0
        while pos < n:
            with self._block(self._bmap(ip, off // BSIZE)) as bp:
                start = off % BSIZE
                m = min(n - pos, BSIZE - start)
                bp.data[start:start + m] = data[pos:pos + m]
                self._log.write(bp)
            pos += m
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # Directories.

    def _entries(self, dp: Inode) -> Iterator[Tuple[int, Dirent]]:
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise RuntimeError("directory read")
            yield off, Dirent.unpack(raw)

    def dirlookup(self, dp: Inode, name: str) -> Optional[Tuple[Inode, int]]:
        """Find ``name`` in directory ``dp``; return the inode and entry offset."""
        if dp.type != InodeType.DIR:
            raise RuntimeError("dirlookup not DIR")
        for off, de in self._entries(dp):
            if de.inum != 0 and namecmp(name, de.name) == 0:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry (``name``, ``inum``) to directory ``dp``."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(name)
        slot = dp.size
        for off, de in self._entries(dp):
            if de.inum == 0:
                slot = off
                break
        if self.writei(dp, Dirent(inum, name).pack(), slot) != DIRENT_SIZE:
            raise RuntimeError("dirlink")

    # Paths.

    def _namex(self, path: str, parent: bool, cwd: Optional[Inode]):
        if path.startswith("/"):
            ip = self.iget(ROOTINO)
        else:
            if cwd is None:
                raise ValueError("relative path needs a current directory")
            ip = self.idup(cwd)
        while True:
            elem = skipelem(path)
            if elem is None:
                break
            name, path = elem
            self.ilock(ip)
            if ip.type != InodeType.DIR:
                self.iunlockput(ip)
                return None
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            self.iunlockput(ip)
            if found is None:
                return None
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip

    def namei(self, path: str, cwd: Optional[Inode] = None) -> Optional[Inode]:
        """Look up ``path``; return a referenced, unlocked inode or None."""
        return self._namex(path, False, cwd)

    def nameiparent(self, path: str, cwd: Optional[Inode] = None) -> Optional[Tuple[Inode, str]]:
        """Return the parent directory of ``path`` and the final element's name."""
        return self._namex(path, True, cwd)