import pytest

from xv6kit.bufcache import BufferCache, BufFlag
from xv6kit.disk import MemoryDisk
from xv6kit.layout import BSIZE


class _FakeDisk:
    def __init__(self):
        self.blocks = {}
        self.reads = []
        self.writes = []

    def rw(self, buf):
        if buf.flags & BufFlag.DIRTY:
            self.writes.append(buf.blockno)
            self.blocks[buf.blockno] = bytes(buf.data)
            buf.flags &= ~BufFlag.DIRTY
        else:
            self.reads.append(buf.blockno)
            buf.data[:] = self.blocks.get(buf.blockno, bytes(BSIZE))
        buf.flags |= BufFlag.VALID


def test_read_returns_locked_buffer_with_data():
    disk = _FakeDisk()
    disk.blocks[3] = b"x" * BSIZE
    cache = BufferCache(disk, 4)
    b = cache.read(1, 3)
    assert b.locked
    assert b.refcnt == 1
    assert bytes(b.data) == b"x" * BSIZE
    assert (b.dev, b.blockno) == (1, 3)


def test_cached_block_is_not_read_twice():
    disk = _FakeDisk()
    cache = BufferCache(disk, 4)
    first = cache.read(1, 3)
    cache.release(first)
    second = cache.read(1, 3)
    assert second is first
    assert disk.reads == [3]


def test_write_reaches_disk():
    disk = _FakeDisk()
    cache = BufferCache(disk, 4)
    b = cache.read(1, 5)
    b.data[:2] = b"ok"
    cache.write(b)
    assert disk.blocks[5][:2] == b"ok"
    assert b.flags == BufFlag.VALID
    cache.release(b)


def test_release_moves_buffer_to_front():
    cache = BufferCache(_FakeDisk(), 3)
    b = cache.read(1, 7)
    cache.release(b)
    assert cache.buffers[0] is b
    assert b.refcnt == 0
    assert not b.locked


def test_least_recently_used_is_recycled():
    disk = _FakeDisk()
    cache = BufferCache(disk, 2)
    for blockno in (1, 2, 3):
        cache.release(cache.read(1, blockno))
    cache.release(cache.read(1, 1))
    assert disk.reads == [1, 2, 3, 1]
    cache.release(cache.read(1, 3))
    assert disk.reads == [1, 2, 3, 1]


def test_no_free_buffers():
    cache = BufferCache(_FakeDisk(), 1)
    cache.read(1, 1)
    with pytest.raises(RuntimeError):
        cache.read(1, 2)


def test_dirty_buffer_is_not_recycled():
    cache = BufferCache(_FakeDisk(), 1)
    b = cache.read(1, 1)
    b.flags |= BufFlag.DIRTY
    cache.release(b)
    with pytest.raises(RuntimeError):
        cache.read(1, 2)


def test_locked_block_cannot_be_read_again():
    cache = BufferCache(_FakeDisk(), 2)
    b = cache.read(1, 1)
    with pytest.raises(RuntimeError):
        cache.read(1, 1)
    assert b.refcnt == 1


def test_release_and_write_need_lock():
    cache = BufferCache(_FakeDisk(), 2)
    b = cache.read(1, 1)
    cache.release(b)
    with pytest.raises(RuntimeError):
        cache.release(b)
    with pytest.raises(RuntimeError):
        cache.write(b)


def test_empty_cache_rejected():
    with pytest.raises(ValueError):
        BufferCache(_FakeDisk(), 0)


def test_works_with_memory_disk():
    image = bytearray(4 * BSIZE)
    image[2 * BSIZE:2 * BSIZE + 4] = b"data"
    disk = MemoryDisk(image, dev=1)
    cache = BufferCache(disk, 2)
    b = cache.read(1, 2)
    assert bytes(b.data[:4]) == b"data"
    b.data[:4] = b"DATA"
    cache.write(b)
    cache.release(b)
    assert disk.image[2 * BSIZE:2 * BSIZE + 4] == b"DATA"