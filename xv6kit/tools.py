"""User tools over a file system image: cat, ls and echo."""

from __future__ import annotations

import argparse
import errno
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from .bufcache import BufferCache
from .disk import MemoryDisk
from .fs import FileSystem, Inode, Stat
from .layout import BSIZE, DIRENT_SIZE, DIRSIZ, Dirent, InodeType, Superblock
from .log import Log
from .printf import format_printf

_DEV = 1
_NBUF = 30
_NINODE = 50
_MAXOPBLOCKS = 10
_PATHBUF = 512


def _absolute(path: str) -> str:
    return path if path.startswith("/") else "/" + path


@contextmanager
def _opened(fs: FileSystem, path: str) -> Iterator[Inode]:
    ip = fs.namei(_absolute(path))
    if ip is None:
        raise FileNotFoundError(errno.ENOENT, "cannot open", path)
    try:
        fs.ilock(ip)
    except BaseException:
        fs.iput(ip)
        raise
    try:
        yield ip
    finally:
        fs.iunlockput(ip)


def cat(fs: FileSystem, paths: Sequence[str]) -> bytes:
    """The contents of the named files, one after another."""
    chunks = []
    for path in paths:
        with _opened(fs, path) as ip:
            chunks.append(fs.readi(ip, 0, ip.size))
    return b"".join(chunks)


def fmtname(path: str) -> str:
    """The last element of ``path``, padded with blanks to DIRSIZ."""
    name = path.rsplit("/", 1)[-1]
    if len(name.encode("utf-8", "surrogateescape")) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _line(name: str, st: Stat) -> str:
    return format_printf("%s %d %d %d", name, st.type, st.ino, st.size)


def ls(fs: FileSystem, path: str) -> List[str]:
    """List a file, or each entry of a directory, as 'name type ino size'."""
    with _opened(fs, path) as ip:
        st = fs.stati(ip)
        raw = fs.readi(ip, 0, ip.size) if st.type == InodeType.DIR else b""

    if st.type == InodeType.FILE:
        return [_line(fmtname(path), st)]
    if st.type != InodeType.DIR:
        return []
    if len(path.encode("utf-8", "surrogateescape")) + 1 + DIRSIZ + 1 > _PATHBUF:
        raise ValueError("ls: path too long")

    lines = []
    for off in range(0, len(raw) - DIRENT_SIZE + 1, DIRENT_SIZE):
        de = Dirent.unpack(raw[off:off + DIRENT_SIZE])
        if de.inum == 0:
            continue
        child = f"{path}/{de.name}"
        try:
            with _opened(fs, child) as cip:
                cst = fs.stati(cip)
        except FileNotFoundError:
            lines.append(f"ls: cannot stat {child}")
            continue
        lines.append(_line(fmtname(child), cst))
    return lines


def echo(args: Sequence[str]) -> str:
    """The arguments separated by blanks and ended by a newline."""
    if not args:
        return ""
    return " ".join(args) + "\n"


def _load(image: str) -> FileSystem:
    data = Path(image).read_bytes()
    sb = Superblock.unpack(data[BSIZE:2 * BSIZE])
    cache = BufferCache(MemoryDisk(data, dev=_DEV), _NBUF)
    log = Log(cache, _DEV, sb, sb.nlog, _MAXOPBLOCKS)
    return FileSystem(cache, log, _DEV, _NINODE)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="xv6kit", description="Inspect a file system image.")
    sub = parser.add_subparsers(dest="command", required=True)
    echo_cmd = sub.add_parser("echo", help="print the arguments")
    echo_cmd.add_argument("words", nargs="*")
    cat_cmd = sub.add_parser("cat", help="print files from an image")
    cat_cmd.add_argument("image")
    cat_cmd.add_argument("paths", nargs="*")
    ls_cmd = sub.add_parser("ls", help="list files in an image")
    ls_cmd.add_argument("image")
    ls_cmd.add_argument("paths", nargs="*")
    args = parser.parse_args(argv)

    if args.command == "echo":
        sys.stdout.write(echo(args.words))
        return 0
    if args.command == "cat" and not args.paths:
        sys.stdout.write(sys.stdin.read())
        return 0

    try:
        fs = _load(args.image)
    except OSError as err:
        print(f"{args.image}: {err.strerror}", file=sys.stderr)
        return 1
    except (ValueError, RuntimeError) as err:
        print(f"{args.image}: {err}", file=sys.stderr)
        return 1

    if args.command == "cat":
        for path in args.paths:
            try:
                data = cat(fs, [path])
            except FileNotFoundError:
                print(f"cat: cannot open {path}")
                return 1
            sys.stdout.write(data.decode("utf-8", "replace"))
        return 0

    for path in args.paths or ["."]:
        try:
            lines = ls(fs, path)
        except FileNotFoundError:
            print(f"ls: cannot open {path}", file=sys.stderr)
            continue
        except ValueError as err:
            print(err)
            continue
        for line in lines:
            print(line)
    return 0