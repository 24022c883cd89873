import struct

import pytest

from xv6kit.mp import MPBUS, MPIOAPIC, MPPROC, find_mp, parse_config


def _fix_checksum(raw: bytearray, index: int, end: int) -> bytes:
    raw[index] = 0
    raw[index] = (-sum(raw[:end])) & 0xFF
    return bytes(raw)


def _floating(physaddr, imcrp=0):
    raw = bytearray(b"_MP_" + struct.pack("<I", physaddr) + bytes([1, 4, 0, 0, imcrp, 0, 0, 0]))
    return _fix_checksum(raw, 10, 16)


def _config(entries, version=4, signature=b"PCMP", lapicaddr=0xFEE00000, fix=True):
    body = b"".join(entries)
    length = 44 + len(body)
    header = struct.pack(
        "<4sHBB20sIHHIHBB", signature, length, version, 0, b"TESTBOARD", 0, 0,
        len(entries), lapicaddr, 0, 0, 0,
    )
    raw = bytearray(header + body)
    return _fix_checksum(raw, 7, length) if fix else bytes(raw)


def _proc(apicid):
    return struct.pack("<BBBB4sI8x", MPPROC, apicid, 0x14, 1, b"\0\0\0\0", 0)


def _ioapic(apicno):
    return struct.pack("<BBBBI", MPIOAPIC, apicno, 0x11, 1, 0xFEC00000)


def _bus():
    return bytes([MPBUS]) + b"ISA   " + b"\0"


def test_find_mp_locates_structure():
    memory = bytearray(256)
    memory[32:48] = _floating(0x9FC00, imcrp=1)
    mp = find_mp(bytes(memory), 0xF0000)
    assert mp.address == 0xF0000 + 32
    assert mp.physaddr == 0x9FC00
    assert mp.imcrp == 1
    assert mp.has_config_table


def test_find_mp_rejects_bad_checksum():
    memory = bytearray(64)
    memory[16:32] = _floating(0x1000)
    memory[30] ^= 0xFF
    assert find_mp(bytes(memory)) is None


def test_find_mp_only_checks_aligned_offsets():
    memory = bytearray(64)
    memory[8:24] = _floating(0x1000)
    assert find_mp(bytes(memory)) is None


def test_default_configuration_has_no_table():
    mp = find_mp(_floating(0))
    assert not mp.has_config_table


def test_parse_config_collects_cpus_and_ioapic():
    conf = parse_config(_config([_proc(0), _proc(1), _ioapic(2), _bus()]))
    assert conf.cpus == (0, 1)
    assert conf.ioapicid == 2
    assert conf.lapicaddr == 0xFEE00000
    assert conf.version == 4
    assert conf.product == "TESTBOARD"


def test_parse_config_version_one_accepted():
    conf = parse_config(_config([_proc(3)], version=1))
    assert conf.cpus == (3,)


def test_parse_config_bad_signature():
    with pytest.raises(ValueError):
        parse_config(_config([_proc(0)], signature=b"XXXX"))


def test_parse_config_bad_version():
    with pytest.raises(ValueError):
        parse_config(_config([_proc(0)], version=2))


def test_parse_config_bad_checksum():
    raw = bytearray(_config([_proc(0)]))
    raw[-1] ^= 0x01
    with pytest.raises(ValueError):
        parse_config(bytes(raw))


def test_parse_config_unknown_entry():
    with pytest.raises(ValueError, match="suitable machine"):
        parse_config(_config([_proc(0), bytes([9]) + bytes(7)]))


def test_parse_config_truncated():
    with pytest.raises(ValueError):
        parse_config(b"PCMP")