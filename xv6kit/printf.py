"""Formatting for the minimal printf dialects: %d %x %p %s (and %c for users)."""

from __future__ import annotations

from typing import Any, Iterator, Optional

_UPPER = "0123456789ABCDEF"
_LOWER = "0123456789abcdef"
_UINT = 0xFFFFFFFF


def _printint(value: Any, base: int, signed: bool, digits: str) -> str:
    x = int(value) & _UINT
    negative = signed and bool(x & 0x80000000)
    if negative:
        x = (1 << 32) - x
    out = []
    while True:
        out.append(digits[x % base])
        x //= base
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def _next(args: Iterator[Any]) -> Any:
    try:
        return next(args)
    except StopIteration:
        raise TypeError("not enough arguments for format string") from None


def _string(value: Any) -> str:
    if value is None:
        return "(null)"
    text = value.decode("latin-1") if isinstance(value, bytes) else str(value)
    return text.split("\0", 1)[0]


def _format(fmt: str, args: tuple, digits: str, with_char: bool) -> str:
    values = iter(args)
    chars = iter(fmt.split("\0", 1)[0])
    out = []
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        spec: Optional[str] = next(chars, None)
        if spec is None:
            break
        if spec == "d":
            out.append(_printint(_next(values), 10, True, digits))
        elif spec in ("x", "p"):
            out.append(_printint(_next(values), 16, False, digits))
        elif spec == "s":
            out.append(_string(_next(values)))
        elif spec == "c" and with_char:
            value = _next(values)
            out.append(value[:1] if isinstance(value, str) else chr(int(value) & 0xFF))
        elif spec == "%":
            out.append("%")
        else:
            out.append("%" + spec)
    return "".join(out)


def format_printf(fmt: str, *args: Any) -> str:
    """Format as the user-level printf does (upper-case hex, supports %c)."""
    return _format(fmt, args, _UPPER, True)


def format_cprintf(fmt: Optional[str], *args: Any) -> str:
    """Format as the console printf does (lower-case hex, no %c)."""
    if fmt is None:
        raise ValueError("null fmt")
    return _format(fmt, args, _LOWER, False)