"""Decoding of PC keyboard scan codes into characters."""

from __future__ import annotations

import enum
from typing import Dict, Iterable, List


class Modifier(enum.IntFlag):
    """Shift, lock and escape state tracked between scan codes."""

    NONE = 0
    SHIFT = 1 << 0
    CTL = 1 << 1
    ALT = 1 << 2
    CAPSLOCK = 1 << 3
    NUMLOCK = 1 << 4
    SCROLLLOCK = 1 << 5
    E0ESC = 1 << 6


KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def _ctrl(key: str) -> int:
    return (ord(key) - ord("@")) & 0xFF


def _table(prefix: str, extras: Dict[int, int]) -> tuple:
    table = [0] * 256
    table[:len(prefix)] = [ord(ch) for ch in prefix]
    for code, value in extras.items():
        table[code] = value
    return tuple(table)


_SPECIAL = {
    0xC8: KEY_UP, 0xD0: KEY_DN,
    0xC9: KEY_PGUP, 0xD1: KEY_PGDN,
    0xCB: KEY_LF, 0xCD: KEY_RT,
    0x97: KEY_HOME, 0xCF: KEY_END,
    0xD2: KEY_INS, 0xD3: KEY_DEL,
}

_KEYPAD_TAIL = "\x00" * 7 + "789-456+1230." + "\x00" * 4

_NORMAL = _table(
    "\x00\x1b1234567890-=\b\t"
    "qwertyuiop[]\n\x00as"
    "dfghjkl;'`\x00\\zxcv"
    "bnm,./\x00*\x00 " + "\x00" * 6 + _KEYPAD_TAIL,
    {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL},
)

_SHIFTED = _table(
    "\x00\x1b!@#$%^&*()_+\b\t"
    "QWERTYUIOP{}\n\x00AS"
    'DFGHJKL:"~\x00|ZXCV'
    "BNM<>?\x00*\x00 " + "\x00" * 6 + _KEYPAD_TAIL,
    {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL},
)


def _control_table() -> tuple:
    extras: Dict[int, int] = {0x1C: ord("\r"), 0x35: _ctrl("/"), 0x9C: ord("\r"), 0xB5: _ctrl("/")}
    for start, keys in ((0x10, "QWERTYUIOP"), (0x1E, "ASDFGHJKL"), (0x2B, "\\ZXCVBNM")):
        extras.update({start + offset: _ctrl(key) for offset, key in enumerate(keys)})
    extras.update(_SPECIAL)
    return _table("", extras)


_CONTROL = _control_table()

_SHIFTCODE = _table("", {
    0x1D: Modifier.CTL, 0x2A: Modifier.SHIFT, 0x36: Modifier.SHIFT,
    0x38: Modifier.ALT, 0x9D: Modifier.CTL, 0xB8: Modifier.ALT,
})
_TOGGLECODE = _table("", {0x3A: Modifier.CAPSLOCK, 0x45: Modifier.NUMLOCK, 0x46: Modifier.SCROLLLOCK})

_CHARCODE = (_NORMAL, _SHIFTED, _CONTROL, _CONTROL)


class KeyboardDecoder:
    """Turns a stream of scan codes into character codes, tracking modifiers."""

    def __init__(self):
        self._shift = 0

    @property
    def modifiers(self) -> Modifier:
        return Modifier(self._shift)

    def _decode(self, data: int) -> int:
        if data == 0xE0:
            self._shift |= Modifier.E0ESC
            return 0
        if data & 0x80:
            if not self._shift & Modifier.E0ESC:
                data &= 0x7F
            self._shift &= ~(_SHIFTCODE[data] | Modifier.E0ESC)
            return 0
        if self._shift & Modifier.E0ESC:
            data |= 0x80
            self._shift &= ~Modifier.E0ESC

        self._shift |= _SHIFTCODE[data]
        self._shift ^= _TOGGLECODE[data]
        c = _CHARCODE[self._shift & (Modifier.CTL | Modifier.SHIFT)][data]
        if self._shift & Modifier.CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c -= ord("a") - ord("A")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c

    def feed(self, data: Iterable[int]) -> List[int]:
        """Decode scan codes and return the character codes they produce."""
        return [c for c in map(self._decode, data) if c]