"""Annotation tokens embedded in comment text.

Grammar (both forms are equivalent, the name is the matching key)::

    annotation := "@" name [ "(" args ")" ]
                | "[" name [ "(" args ")" ] "]"
    name       := ident { "." ident }
    ident      := letter-or-underscore { letter | digit | "_" }
    args       := any characters except "(" and ")"

``@`` must not directly follow a word character, so e-mail addresses
such as ``ops@example.com`` are not annotations. Names are matched
case-sensitively and exactly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional

from .models import AnnotationLocation, Comment

_NAME = r"[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*"

ANNOTATION_PATTERN = re.compile(
    rf"(?<!\w)@(?P<at_name>{_NAME})(?:\((?P<at_args>[^()]*)\))?"
    rf"|\[(?P<br_name>{_NAME})(?:\((?P<br_args>[^()]*)\))?\]"
)


@dataclass(frozen=True)
class AnnotationToken:
    name: str
    args: Optional[str]
    text: str
    start: int
    end: int


def tokenize(line: str) -> Iterator[AnnotationToken]:
    """Yield every annotation token in *line*, left to right."""
    for match in ANNOTATION_PATTERN.finditer(line):
        if match.group("at_name") is not None:
            name, args = match.group("at_name"), match.group("at_args")
        else:
            name, args = match.group("br_name"), match.group("br_args")
        yield AnnotationToken(name, args, match.group(0), match.start(), match.end())


def extract_annotations(comment: Optional[Comment]) -> List[str]:
    """Return annotation names in source order, duplicates kept."""
    if comment is None:
        return []
    return [token.name for line in comment.lines for token in tokenize(line)]


def has_any(comments: Iterable[Optional[Comment]], names: Iterable[str]) -> bool:
    wanted = set(names)
    if not wanted:
        return False
    return any(name in wanted for comment in comments for name in extract_annotations(comment))


def locate_annotations(comment: Optional[Comment], file: str) -> List[AnnotationLocation]:
    if comment is None:
        return []
    locations = []
    for offset, line in enumerate(comment.lines):
        for token in tokenize(line):
            locations.append(AnnotationLocation(file, comment.line + offset, token.name, token.text))
    return locations
