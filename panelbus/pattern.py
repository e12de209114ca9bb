"""Topic patterns for broadcast subscriptions.

Patterns use the Lua pattern dialect (``%w`` for alphanumerics, ``[set]``,
``^``/``$`` anchors, ``*``/``+``/``-``/``?`` quantifiers, captures and
``%f`` frontiers). Each pattern is translated once into a Python regular
expression and cached. By default a pattern matches if it is found anywhere
in the topic, so ``"Sequencer|Transport|"`` matches
``"Sequencer|Transport|Play"``.
"""

import re
from enum import Enum
from functools import lru_cache
from typing import List, Tuple

from panelbus.errors import MalformedPattern

Range = Tuple[int, int]

_MAX_CODEPOINT = 0x10FFFF

# ASCII classes, as in the C locale.
_CLASSES = {
    "a": [(0x41, 0x5A), (0x61, 0x7A)],
    "c": [(0x00, 0x1F), (0x7F, 0x7F)],
    "d": [(0x30, 0x39)],
    "g": [(0x21, 0x7E)],
    "l": [(0x61, 0x7A)],
    "p": [(0x21, 0x2F), (0x3A, 0x40), (0x5B, 0x60), (0x7B, 0x7E)],
    "s": [(0x09, 0x0D), (0x20, 0x20)],
    "u": [(0x41, 0x5A)],
    "w": [(0x30, 0x39), (0x41, 0x5A), (0x61, 0x7A)],
    "x": [(0x30, 0x39), (0x41, 0x46), (0x61, 0x66)],
    "z": [(0x00, 0x00)],
}

_QUANTIFIERS = {"*": "*", "+": "+", "-": "*?", "?": "?"}
_DIGITS = "0123456789"


class MatchMode(str, Enum):
    """How a pattern is applied to a topic."""

    SEARCH = "search"
    FULL = "full"

    @classmethod
    def parse(cls, value: str) -> "MatchMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown match mode {value!r} (expected 'search' or 'full')")


def _normalize(ranges: List[Range]) -> List[Range]:
    merged: List[Range] = []
    for lo, hi in sorted(ranges):
        if merged and lo <= merged[-1][1] + 1:
            merged[-1] = (merged[-1][0], max(merged[-1][1], hi))
        else:
            merged.append((lo, hi))
    return merged


def _complement(ranges: List[Range]) -> List[Range]:
    out: List[Range] = []
    start = 0
    for lo, hi in _normalize(ranges):
        if lo > start:
            out.append((start, lo - 1))
        start = hi + 1
    if start <= _MAX_CODEPOINT:
        out.append((start, _MAX_CODEPOINT))
    return out


def _contains(ranges: List[Range], codepoint: int) -> bool:
    return any(lo <= codepoint <= hi for lo, hi in ranges)


def _escape(codepoint: int) -> str:
    if codepoint <= 0xFF:
        return "\\x%02x" % codepoint
    if codepoint <= 0xFFFF:
        return "\\u%04x" % codepoint
    return "\\U%08x" % codepoint


def _render(ranges: List[Range]) -> str:
    parts = []
    for lo, hi in _normalize(ranges):
        parts.append(_escape(lo) if lo == hi else f"{_escape(lo)}-{_escape(hi)}")
    if not parts:
        # Empty set: a class that can never match.
        return f"[^\\x00-{_escape(_MAX_CODEPOINT)}]"
    return "[" + "".join(parts) + "]"


def _class_ranges(letter: str) -> List[Range]:
    """Ranges for ``%<letter>``; non-class characters stand for themselves."""
    ranges = _CLASSES.get(letter.lower())
    if ranges is None:
        return [(ord(letter), ord(letter))]
    if letter.isupper():
        return _complement(ranges)
    return list(ranges)


class _Translator:
    """Single pass over a Lua-style pattern producing an equivalent regex."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        self.n = len(pattern)
        self.pos = 0
        self.open_groups: List[int] = []
        self.closed_groups = set()
        self.group_count = 0

    def fail(self, reason: str) -> MalformedPattern:
        return MalformedPattern(self.pattern, reason)

    def translate(self) -> str:
        p = self.pattern
        out: List[str] = []
        if p.startswith("^"):
            out.append(r"\A")
            self.pos = 1
        while self.pos < self.n:
            c = p[self.pos]
            if c == "(":
                self.group_count += 1
                self.open_groups.append(self.group_count)
                out.append("(")
                self.pos += 1
            elif c == ")":
                if not self.open_groups:
                    raise self.fail("invalid pattern capture")
                self.closed_groups.add(self.open_groups.pop())
                out.append(")")
                self.pos += 1
            elif c == "$" and self.pos == self.n - 1:
                out.append(r"\Z")
                self.pos += 1
            elif c == "%" and self.pos + 1 < self.n and p[self.pos + 1] == "b":
                raise self.fail("balanced match (%b) is not supported")
            elif c == "%" and self.pos + 1 < self.n and p[self.pos + 1] == "f":
                out.append(self._frontier())
            elif c == "%" and self.pos + 1 < self.n and p[self.pos + 1] in _DIGITS:
                out.append(self._backreference())
            else:
                item = self._single()
                if self.pos < self.n and p[self.pos] in _QUANTIFIERS:
                    item += _QUANTIFIERS[p[self.pos]]
                    self.pos += 1
                out.append(item)
        if self.open_groups:
            raise self.fail("unfinished capture")
        return "".join(out)

    def _single(self) -> str:
        p = self.pattern
        c = p[self.pos]
        if c == "%":
            if self.pos + 1 >= self.n:
                raise self.fail("malformed pattern (ends with '%')")
            letter = p[self.pos + 1]
            self.pos += 2
            if letter.isalnum() and letter.lower() in _CLASSES:
                return _render(_class_ranges(letter))
            return re.escape(letter)
        if c == "[":
            return _render(self._set())
        self.pos += 1
        if c == ".":
            return "."
        return re.escape(c)

    def _set(self) -> List[Range]:
        p = self.pattern
        j = self.pos + 1
        negated = False
        if j < self.n and p[j] == "^":
            negated = True
            j += 1
        ranges: List[Range] = []
        first = True
        while True:
            if j >= self.n:
                raise self.fail("malformed pattern (missing ']')")
            c = p[j]
            if c == "]" and not first:
                j += 1
                break
            first = False
            if c == "%":
                if j + 1 >= self.n:
                    raise self.fail("malformed pattern (missing ']')")
                ranges.extend(_class_ranges(p[j + 1]))
                j += 2
            elif j + 2 < self.n and p[j + 1] == "-" and p[j + 2] != "]":
                lo, hi = ord(c), ord(p[j + 2])
                if lo <= hi:
                    ranges.append((lo, hi))
                j += 3
            else:
                ranges.append((ord(c), ord(c)))
                j += 1
        self.pos = j
        return _complement(ranges) if negated else _normalize(ranges)

    def _frontier(self) -> str:
        self.pos += 2
        if self.pos >= self.n or self.pattern[self.pos] != "[":
            raise self.fail("missing '[' after '%f' in pattern")
        ranges = self._set()
        outside = _complement(ranges)
        # Lua treats the positions before the start and after the end as '\0'.
        if _contains(ranges, 0):
            before = f"(?<={_render(outside)})"
            after = f"(?={_render(ranges)}|\\Z)"
        else:
            before = f"(?<!{_render(ranges)})"
            after = f"(?={_render(ranges)})"
        return before + after

    def _backreference(self) -> str:
        index = int(self.pattern[self.pos + 1])
        if index == 0 or index not in self.closed_groups:
            raise self.fail(f"invalid capture index %{index}")
        self.pos += 2
        return f"(?:\\{index})"


def translate(pattern: str) -> str:
    """Return the Python regex source equivalent to a Lua-style pattern."""
    return _Translator(pattern).translate()


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> "re.Pattern[str]":
    """Compile (and cache) a pattern. Raises MalformedPattern."""
    source = translate(pattern)
    try:
        return re.compile(source, re.DOTALL)
    except re.error as e:
        raise MalformedPattern(pattern, str(e)) from e


def matches(pattern: str, topic: str, mode: MatchMode = MatchMode.SEARCH) -> bool:
    """True if ``pattern`` matches ``topic``.

    In SEARCH mode any match location counts, including an empty one, so the
    empty pattern matches every topic. In FULL mode the whole topic must match.
    """
    if not isinstance(pattern, str):
        raise MalformedPattern(repr(pattern), "pattern must be a string")
    compiled = compile_pattern(pattern)
    if mode is MatchMode.FULL:
        return compiled.fullmatch(topic) is not None
    return compiled.search(topic) is not None
