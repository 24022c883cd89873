import errno
from dataclasses import dataclass

import pytest

from xv6kit.bufcache import BufferCache
from xv6kit.disk import MemoryDisk
from xv6kit.file import File, FileTable, FileType
from xv6kit.fs import FileSystem
from xv6kit.layout import InodeType
from xv6kit.log import Log
from xv6kit.mkfs import ImageBuilder

CONTENT = b"hello world\n"


@dataclass
class Env:
    disk: MemoryDisk
    fs: FileSystem
    table: FileTable


def _mount(disk, sb):
    cache = BufferCache(disk, 30)
    log = Log(cache, 1, sb, 30, 10)
    return FileSystem(cache, log, 1, 50)


@pytest.fixture
def env():
    builder = ImageBuilder(1000, 200, 30)
    builder.add_file("README", CONTENT)
    image = builder.finish()
    disk = MemoryDisk(image, dev=1)
    fs = _mount(disk, builder.superblock)
    return Env(disk, fs, FileTable(fs, 4))


def _open(env, path, readable=True, writable=True):
    ip = env.fs.namei(path)
    f = env.table.alloc()
    f.type = FileType.INODE
    f.ip = ip
    f.readable = readable
    f.writable = writable
    return f


def test_read_advances_offset(env):
    f = _open(env, "/README")
    assert env.table.read(f, 5) == CONTENT[:5]
    assert f.off == 5
    assert env.table.read(f, 100) == CONTENT[5:]
    assert env.table.read(f, 10) == b""


def test_stat_reports_file(env):
    f = _open(env, "/README")
    st = env.table.stat(f)
    assert st.type == InodeType.FILE
    assert st.size == len(CONTENT)


def test_write_appends_in_chunks(env):
    f = _open(env, "/README")
    env.table.read(f, len(CONTENT))
    payload = (bytes(range(256)) * 16)[:4000]
    assert env.table.write(f, payload) == len(payload)
    assert f.off == len(CONTENT) + len(payload)
    ip = f.ip
    env.fs.ilock(ip)
    try:
        assert env.fs.readi(ip, 0, 10000) == CONTENT + payload
    finally:
        env.fs.iunlock(ip)
    assert env.table.stat(f).size == len(CONTENT) + len(payload)


def test_write_reaches_disk(env):
    f = _open(env, "/README")
    env.table.read(f, len(CONTENT))
    env.table.write(f, b"more text\n")
    env.table.close(f)
    fresh = _mount(MemoryDisk(env.disk.image, dev=1), env.fs.superblock)
    ip = fresh.namei("/README")
    fresh.ilock(ip)
    assert fresh.readi(ip, 0, 100) == CONTENT + b"more text\n"


def test_close_releases_inode(env):
    f = _open(env, "/README")
    ip = f.ip
    assert ip.ref == 1
    env.table.close(f)
    assert f.ref == 0
    assert f.type is FileType.NONE
    assert ip.ref == 0


def test_dup_keeps_file_open(env):
    f = _open(env, "/README")
    assert env.table.dup(f) is f
    assert f.ref == 2
    env.table.close(f)
    assert f.ref == 1
    assert f.type is FileType.INODE
    assert f.ip.ref == 1


def test_table_full():
    table = FileTable(None, 2)
    first = table.alloc()
    table.alloc()
    with pytest.raises(OSError) as info:
        table.alloc()
    assert info.value.errno == errno.ENFILE
    table.close(first)
    assert table.alloc() is first


def test_dup_and_close_of_free_file_fail():
    table = FileTable(None, 1)
    f = table.files[0]
    with pytest.raises(RuntimeError):
        table.dup(f)
    with pytest.raises(RuntimeError):
        table.close(f)


def test_permissions(env):
    f = _open(env, "/README", readable=False, writable=False)
    with pytest.raises(PermissionError):
        env.table.read(f, 1)
    with pytest.raises(PermissionError):
        env.table.write(f, b"x")


def test_stat_needs_inode():
    table = FileTable(None, 1)
    f = table.alloc()
    f.type = FileType.PIPE
    with pytest.raises(ValueError):
        table.stat(f)


def test_inode_file_without_file_system():
    table = FileTable(None, 1)
    f = table.alloc()
    f.type = FileType.INODE
    f.readable = True
    f.ip = object()
    with pytest.raises(RuntimeError):
        table.read(f, 1)