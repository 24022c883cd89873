"""A small grep supporting the ^ . * $ operators."""

from __future__ import annotations

import sys
from typing import Iterable, Iterator, Optional, Sequence


def match(pattern: str, text: str) -> bool:
    """Whether ``pattern`` matches anywhere in ``text``."""
    if pattern.startswith("^"):
        return _matchhere(pattern, 1, text, 0)
    return any(_matchhere(pattern, 0, text, start) for start in range(len(text) + 1))


def _matchhere(pattern: str, pi: int, text: str, ti: int) -> bool:
    while True:
        if pi == len(pattern):
            return True
        if pi + 1 < len(pattern) and pattern[pi + 1] == "*":
            return _matchstar(pattern[pi], pattern, pi + 2, text, ti)
        if pattern[pi] == "$" and pi + 1 == len(pattern):
            return ti == len(text)
        if ti < len(text) and pattern[pi] in (".", text[ti]):
            pi += 1
            ti += 1
            continue
        return False


def _matchstar(c: str, pattern: str, pi: int, text: str, ti: int) -> bool:
    while True:
        if _matchhere(pattern, pi, text, ti):
            return True
        if ti < len(text) and (text[ti] == c or c == "."):
            ti += 1
            continue
        return False


def grep(pattern: str, stream: Iterable[str]) -> Iterator[str]:
    """Yield the newline-terminated lines of ``stream`` that match ``pattern``."""
    for line in stream:
        if line.endswith("\n") and match(pattern, line[:-1]):
            yield line


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern, names = args[0], args[1:]
    if not names:
        sys.stdout.writelines(grep(pattern, sys.stdin))
        return 0
    for name in names:
        try:
            with open(name, encoding="utf-8", errors="replace", newline="") as stream:
                sys.stdout.writelines(grep(pattern, stream))
        except OSError:
            print(f"grep: cannot open {name}")
            return 1
    return 0