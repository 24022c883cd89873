"""MultiProcessor specification tables: floating pointer and configuration table."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import List, Optional, Tuple

MPPROC = 0x00
MPBUS = 0x01
MPIOAPIC = 0x02
MPIOINTR = 0x03
MPLINTR = 0x04
MPBOOT = 0x02

_MP = struct.Struct("<4sIBBBBB3x")
_CONF = struct.Struct("<4sHBB20sIHHIHBB")
_PROC = struct.Struct("<BBBB4sI8x")
_IOAPIC = struct.Struct("<BBBBI")
_SHORT_ENTRY = 8


def _checksum_ok(data: bytes) -> bool:
    return sum(data) & 0xFF == 0


@dataclass(frozen=True)
class MPFloating:
    """The MP floating pointer structure and where it was found."""

    address: int
    physaddr: int
    length: int
    specrev: int
    checksum: int
    type: int
    imcrp: int

    @property
    def has_config_table(self) -> bool:
        """False for the default configurations, which have no table."""
        return self.physaddr != 0


@dataclass(frozen=True)
class MachineConfig:
    """What the configuration table says about the machine."""

    version: int
    lapicaddr: int
    cpus: Tuple[int, ...]
    ioapicid: int
    product: str


def find_mp(memory: bytes, base: int = 0) -> Optional[MPFloating]:
    """Look for an MP floating pointer in ``memory``, which starts at physical ``base``."""
    memory = bytes(memory)
    for off in range(0, len(memory) - _MP.size + 1, _MP.size):
        chunk = memory[off:off + _MP.size]
        if chunk[:4] == b"_MP_" and _checksum_ok(chunk):
            _, physaddr, length, specrev, checksum, mptype, imcrp = _MP.unpack(chunk)
            return MPFloating(base + off, physaddr, length, specrev, checksum, mptype, imcrp)
    return None


def parse_config(data: bytes) -> MachineConfig:
    """Validate an MP configuration table and collect its processors and I/O APIC."""
    data = bytes(data)
    if len(data) < _CONF.size:
        raise ValueError("Expect to run on an SMP: configuration table truncated")
    (signature, length, version, _checksum, product, _oemtable, _oemlength,
     _entries, lapicaddr, _xlength, _xchecksum, _reserved) = _CONF.unpack_from(data)
    if signature != b"PCMP":
        raise ValueError("Expect to run on an SMP: bad configuration signature")
    if version not in (1, 4):
        raise ValueError(f"Expect to run on an SMP: unsupported version {version}")
    if length < _CONF.size or length > len(data):
        raise ValueError("Expect to run on an SMP: bad configuration length")
    if not _checksum_ok(data[:length]):
        raise ValueError("Expect to run on an SMP: bad configuration checksum")

    cpus: List[int] = []
    ioapicid = 0
    p = _CONF.size
    while p < length:
        kind = data[p]
        if kind == MPPROC:
            if p + _PROC.size > length:
                raise ValueError("processor entry truncated")
            cpus.append(_PROC.unpack_from(data, p)[1])
            p += _PROC.size
        elif kind == MPIOAPIC:
            if p + _IOAPIC.size > length:
                raise ValueError("I/O APIC entry truncated")
            ioapicid = _IOAPIC.unpack_from(data, p)[1]
            p += _IOAPIC.size
        elif kind in (MPBUS, MPIOINTR, MPLINTR):
            p += _SHORT_ENTRY
        else:
            raise ValueError("Didn't find a suitable machine")

    name = product.split(b"\0", 1)[0].decode("latin-1").rstrip()
    return MachineConfig(version, lapicaddr, tuple(cpus), ioapicid, name)