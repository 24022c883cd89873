"""Build a file system image holding a root directory and a set of files."""

from __future__ import annotations

import argparse
import struct
import sys
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    Dirent,
    DiskInode,
    InodeType,
    Superblock,
    iblock,
)

NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh image in memory: boot, superblock, log, inodes, bitmap, data."""

    def __init__(self, fs_size: int, ninodes: int, nlog: int):
        self.fs_size = fs_size
        self.nlog = nlog
        self.nbitmap = fs_size // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = fs_size - self.nmeta
        if self.nblocks <= 0:
            raise ValueError("file system too small for its metadata")
        self.superblock = Superblock(
            size=fs_size,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self._image = bytearray(fs_size * BSIZE)
        self._wsect(1, self.superblock.pack())
        self._freeinode = 1
        self.freeblock = self.nmeta
        self._finished = False

        self.root = self.ialloc(InodeType.DIR)
        if self.root != ROOTINO:
            raise RuntimeError("root directory did not get the root inode number")
        for name in (".", ".."):
            self.iappend(self.root, Dirent(self.root, name).pack())

    def _check_sector(self, sec: int) -> None:
        if not 0 <= sec < self.fs_size:
            raise ValueError(f"sector {sec} outside the image")

    def _rsect(self, sec: int) -> bytes:
        self._check_sector(sec)
        return bytes(self._image[sec * BSIZE:(sec + 1) * BSIZE])

    def _wsect(self, sec: int, data: bytes) -> None:
        self._check_sector(sec)
        block = bytes(data[:BSIZE]).ljust(BSIZE, b"\0")
        self._image[sec * BSIZE:(sec + 1) * BSIZE] = block

    def _inode_offset(self, inum: int) -> int:
        return iblock(inum, self.superblock) * BSIZE + (inum % IPB) * DINODE_SIZE

    def _take_block(self) -> int:
        if self.freeblock >= self.fs_size:
            raise ValueError("out of blocks")
        block = self.freeblock
        self.freeblock += 1
        return block

    def rinode(self, inum: int) -> DiskInode:
        """Read inode ``inum`` from the image."""
        off = self._inode_offset(inum)
        return DiskInode.unpack(bytes(self._image[off:off + DINODE_SIZE]))

    def winode(self, inum: int, dinode: DiskInode) -> None:
        """Write inode ``inum`` into the image."""
        off = self._inode_offset(inum)
        self._image[off:off + DINODE_SIZE] = dinode.pack()

    def ialloc(self, itype: InodeType) -> int:
        """Allocate the next inode with one link and return its number."""
        inum = self._freeinode
        if inum >= self.superblock.ninodes:
            raise ValueError("out of inodes")
        self._freeinode += 1
        self.winode(inum, DiskInode(type=int(itype), nlink=1))
        return inum

    def iappend(self, inum: int, data: bytes) -> None:
        """Append ``data`` to the end of inode ``inum``, allocating blocks as needed."""
        data = bytes(data)
        din = self.rinode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._take_block()
                target = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._take_block()
                ind = din.addrs[NDIRECT]
                indirect = list(_INDIRECT.unpack(self._rsect(ind)))
                slot = fbn - NDIRECT
                if indirect[slot] == 0:
                    indirect[slot] = self._take_block()
                    self._wsect(ind, _INDIRECT.pack(*indirect))
                target = indirect[slot]
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            start = target * BSIZE + off - fbn * BSIZE
            self._image[start:start + n1] = data[pos:pos + n1]
            pos += n1
            off += n1
        din.size = off
        self.winode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Add a regular file to the root directory; a leading '_' is dropped."""
        if "/" in name:
            raise ValueError(f"file name may not contain '/': {name!r}")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(InodeType.FILE)
        self.iappend(self.root, Dirent(inum, name).pack())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round up the root directory size, write the bitmap and return the image."""
        if self._finished:
            raise RuntimeError("image already finished")
        din = self.rinode(self.root)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self.winode(self.root, din)

        used = self.freeblock
        if used >= BPB:
            raise ValueError("too many blocks in use for one bitmap block")
        bitmap = bytearray(BSIZE)
        full, rest = divmod(used, 8)
        bitmap[:full] = b"\xff" * full
        if rest:
            bitmap[full] = (1 << rest) - 1
        self._wsect(self.superblock.bmapstart, bitmap)
        self._finished = True
        return bytes(self._image)


def build_image(
    path: Union[str, Path],
    files: Iterable[Union[str, Path]],
    fs_size: int,
    ninodes: int,
    nlog: int,
) -> Superblock:
    """Write an image to ``path`` holding ``files`` in its root directory."""
    builder = ImageBuilder(fs_size, ninodes, nlog)
    for name in files:
        source = Path(name)
        builder.add_file(source.name, source.read_bytes())
    Path(path).write_bytes(builder.finish())
    return builder.superblock


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="mkfs", description="Build a file system image.")
    parser.add_argument("image")
    parser.add_argument("files", nargs="*")
    parser.add_argument("--size", type=int, required=True, help="image size in blocks")
    parser.add_argument("--nlog", type=int, required=True, help="number of log blocks")
    parser.add_argument("--ninodes", type=int, default=NINODES)
    args = parser.parse_args(argv)

    try:
        builder = ImageBuilder(args.size, args.ninodes, args.nlog)
        print(
            f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
            f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
            f"blocks {builder.nblocks} total {builder.fs_size}"
        )
        for name in args.files:
            source = Path(name)
            builder.add_file(source.name, source.read_bytes())
        print(f"balloc: first {builder.freeblock} blocks have been allocated")
        image = builder.finish()
        print(f"balloc: write bitmap block at sector {builder.superblock.bmapstart}")
        Path(args.image).write_bytes(image)
    except OSError as err:
        print(f"{err.filename}: {err.strerror}", file=sys.stderr)
        return 1
    except ValueError as err:
        print(f"mkfs: {err}", file=sys.stderr)
        return 1
    return 0