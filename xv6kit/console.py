"""Console input: a line-editing ring buffer fed by keyboard interrupts."""

from __future__ import annotations

from typing import Iterable, Iterator, Union

INPUT_BUF = 128
BACKSPACE = 0x100


def _ctrl(key: str) -> int:
    return ord(key) - ord("@")


_CTRL_D = _ctrl("D")
_CTRL_H = _ctrl("H")
_CTRL_P = _ctrl("P")
_CTRL_U = _ctrl("U")
_DELETE = 0x7F


def _codes(chars: Union[str, bytes, Iterable[int]]) -> Iterator[int]:
    if isinstance(chars, str):
        return (ord(ch) for ch in chars)
    return iter(chars)


class ConsoleInput:
    """Collects typed characters, handles erase and kill, hands out whole lines."""

    def __init__(self):
        self._buf = bytearray(INPUT_BUF)
        self._r = 0  # read index
        self._w = 0  # write index: end of committed input
        self._e = 0  # edit index
        self.dump_requested = False

    @staticmethod
    def _echo(out: bytearray, c: int) -> None:
        if c == BACKSPACE:
            out.extend(b"\b \b")
        else:
            out.append(c & 0xFF)

    def interrupt(self, chars: Union[str, bytes, Iterable[int]]) -> bytes:
        """Process typed characters and return what is echoed to the screen.

        A negative code ends input early. Control-P sets ``dump_requested``.
        """
        echo = bytearray()
        for c in _codes(chars):
            if c < 0:
                break
            if c == _CTRL_P:
                self.dump_requested = True
            elif c == _CTRL_U:
                while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF] != ord("\n"):
                    self._e -= 1
                    self._echo(echo, BACKSPACE)
            elif c in (_CTRL_H, _DELETE):
                if self._e != self._w:
                    self._e -= 1
                    self._echo(echo, BACKSPACE)
            elif c != 0 and self._e - self._r < INPUT_BUF:
                if c == ord("\r"):
                    c = ord("\n")
                self._buf[self._e % INPUT_BUF] = c & 0xFF
                self._e += 1
                self._echo(echo, c)
                if c in (ord("\n"), _CTRL_D) or self._e == self._r + INPUT_BUF:
                    self._w = self._e
        return bytes(echo)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes of committed input, stopping after a newline.

        Control-D marks end of file: input before it is returned, and the
        next read returns no bytes. Raises BlockingIOError when there is no
        committed input to return.
        """
        out = bytearray()
        target = n
        while n > 0:
            if self._r == self._w:
                if not out:
                    raise BlockingIOError("no console input available")
                break
            c = self._buf[self._r % INPUT_BUF]
            self._r += 1
            if c == _CTRL_D:
                if n < target:
                    # Keep ^D so the next read returns zero bytes.
                    self._r -= 1
                break
            out.append(c)
            n -= 1
            if c == ord("\n"):
                break
        return bytes(out)