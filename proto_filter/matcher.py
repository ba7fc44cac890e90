"""Glob matching of dotted fully-qualified names.

Dots act as path separators, so ``*`` spans exactly one component:
``my.package.*`` matches ``my.package.Foo`` but not
``my.package.sub.Foo``. Supported syntax:

* ``*``        any run of characters within one component
* ``?``        any single character except ``.``
* ``[abc]``, ``[a-z]``, ``[^a-z]``  character classes (never match ``.``)
* ``\\c``       the literal character ``c``

A pattern starting with ``*.`` additionally matches by suffix:
``*.OrderService`` matches any FQN ending in ``.OrderService`` as well as
the bare ``OrderService``.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, Optional, Pattern, Tuple

from .errors import PatternError

SEPARATOR = "."


def matches_any(fqn: str, patterns: Iterable[str]) -> bool:
    return first_match(fqn, patterns) is not None


def first_match(fqn: str, patterns: Iterable[str]) -> Optional[str]:
    """Return the first pattern matching *fqn*, or None.

    Raises:
        PatternError: a pattern is not a valid glob.
    """
    for pattern in patterns:
        if match_glob(fqn, pattern):
            return pattern
    return None


def match_glob(fqn: str, pattern: str) -> bool:
    if _compile(pattern).fullmatch(fqn):
        return True

    if pattern.startswith("*" + SEPARATOR):
        suffix = pattern[2:]
        if fqn.endswith(SEPARATOR + suffix) or fqn == suffix:
            return True
    return False


@lru_cache(maxsize=256)
def _compile(pattern: str) -> Pattern[str]:
    return re.compile(translate(pattern))


def translate(pattern: str) -> str:
    """Translate a dotted glob into a regular expression for ``fullmatch``."""
    out = []
    i, n = 0, len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == "*":
            out.append(r"[^.]*")
            i += 1
        elif ch == "?":
            out.append(r"[^.]")
            i += 1
        elif ch == "\\":
            if i + 1 >= n:
                raise PatternError(pattern, "trailing backslash")
            out.append(re.escape(pattern[i + 1]))
            i += 2
        elif ch == "[":
            cls, i = _translate_class(pattern, i)
            out.append(cls)
        else:
            out.append(re.escape(ch))
            i += 1
    return "".join(out)


def _translate_class(pattern: str, start: int) -> Tuple[str, int]:
    i = start + 1
    n = len(pattern)
    negate = False
    if i < n and pattern[i] == "^":
        negate = True
        i += 1

    ranges = []
    while True:
        if i >= n:
            raise PatternError(pattern, "unterminated character class")
        if pattern[i] == "]" and ranges:
            i += 1
            break
        lo, i = _class_char(pattern, i)
        hi = lo
        if i < n and pattern[i] == "-":
            hi, i = _class_char(pattern, i + 1)
            if hi < lo:
                raise PatternError(pattern, f"invalid range {lo}-{hi}")
        ranges.append((lo, hi))

    body = "".join(
        re.escape(lo) if lo == hi else f"{re.escape(lo)}-{re.escape(hi)}"
        for lo, hi in ranges
    )
    if negate:
        return f"[^.{body}]", i
    return f"(?!\\.)[{body}]", i


def _class_char(pattern: str, i: int) -> Tuple[str, int]:
    n = len(pattern)
    if i >= n:
        raise PatternError(pattern, "unterminated character class")
    ch = pattern[i]
    if ch in "-]":
        raise PatternError(pattern, f"unexpected {ch!r} in character class")
    if ch == "\\":
        if i + 1 >= n:
            raise PatternError(pattern, "trailing backslash")
        return pattern[i + 1], i + 2
    return ch, i + 1
