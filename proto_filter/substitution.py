"""Comment rewriting: annotation substitution, strict checks, block-comment conversion."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .annotations import locate_annotations, tokenize
from .errors import StrictSubstitutionError
from .models import AnnotationLocation, Comment, CommentBlock, ProtoFile

logger = logging.getLogger(__name__)

PLACEHOLDER = "%s"


# ---------------------------------------------------------------------------
# Tree walking
# ---------------------------------------------------------------------------

def _walk(elements: list) -> Iterator[object]:
    for elem in elements:
        yield elem
        children = getattr(elem, "elements", None)
        if children:
            yield from _walk(children)


def iter_comments(tree: ProtoFile) -> Iterator[Comment]:
    """Every comment in the tree: leading, inline and free-standing."""
    for node in _walk(tree.elements):
        for attr in ("comment", "inline_comment"):
            comment = getattr(node, attr, None)
            if comment is not None:
                yield comment


def _rewrite_comments(elements: list, rewrite: Callable[[Comment], Tuple[Optional[Comment], int]]) -> Tuple[list, int]:
    """Apply *rewrite* to every comment; free-standing comments that vanish are dropped."""
    total = 0
    kept = []
    for elem in elements:
        if isinstance(elem, CommentBlock):
            new, count = rewrite(elem.comment)
            total += count
            if new is None:
                continue
            elem.comment = new
            kept.append(elem)
            continue
        for attr in ("comment", "inline_comment"):
            comment = getattr(elem, attr, None)
            if comment is not None:
                new, count = rewrite(comment)
                total += count
                setattr(elem, attr, new)
        children = getattr(elem, "elements", None)
        if children:
            elem.elements, count = _rewrite_comments(children, rewrite)
            total += count
        kept.append(elem)
    return kept, total


# ---------------------------------------------------------------------------
# Substitution
# ---------------------------------------------------------------------------

def _is_blank(line: str) -> bool:
    return not line.strip().lstrip("*").strip()


def substitute_line(line: str, mapping: Dict[str, str]) -> Tuple[str, int]:
    """Replace every mapped annotation token in *line*.

    ``%s`` in a replacement receives the token's original arguments;
    an empty replacement deletes the token together with one space
    before it.
    """
    out: List[str] = []
    pos = 0
    count = 0
    for token in tokenize(line):
        if token.name not in mapping:
            continue
        out.append(line[pos:token.start])
        replacement = mapping[token.name].replace(PLACEHOLDER, token.args or "")
        if not replacement and out[-1].endswith(" "):
            rest = line[token.end:]
            if not rest or rest[0] == " ":
                out[-1] = out[-1][:-1]
        out.append(replacement)
        pos = token.end
        count += 1
    if not count:
        return line, 0
    out.append(line[pos:])
    return "".join(out).rstrip(), count


def _substitute_comment(comment: Comment, mapping: Dict[str, str]) -> Tuple[Optional[Comment], int]:
    total = 0
    lines: List[str] = []
    for line in comment.lines:
        new_line, count = substitute_line(line, mapping)
        total += count
        if count and _is_blank(new_line):
            continue
        lines.append(new_line)
    if not total:
        return comment, 0
    if all(_is_blank(line) for line in lines):
        return None, total
    comment.lines = lines
    return comment, total


def substitute_annotations(tree: ProtoFile, mapping: Dict[str, str]) -> int:
    """Rewrite annotation tokens per *mapping*; returns the number of tokens replaced.

    Lines left blank by a substitution are dropped, and a comment with
    nothing left is removed from its node.
    """
    if not mapping:
        return 0
    tree.elements, total = _rewrite_comments(
        tree.elements, lambda comment: _substitute_comment(comment, mapping)
    )
    if total:
        logger.debug("Substituted %d annotations in %s", total, tree.path)
    return total


def strip_annotations(tree: ProtoFile, names: Iterable[str]) -> int:
    return substitute_annotations(tree, {name: "" for name in names})


# ---------------------------------------------------------------------------
# Collection and strict mode
# ---------------------------------------------------------------------------

def collect_annotations(tree: ProtoFile) -> Set[str]:
    return {token.name for comment in iter_comments(tree) for line in comment.lines for token in tokenize(line)}


def collect_annotation_locations(tree: ProtoFile, file: Optional[str] = None) -> List[AnnotationLocation]:
    file = file if file is not None else tree.path
    locations: List[AnnotationLocation] = []
    for comment in iter_comments(tree):
        locations.extend(locate_annotations(comment, file))
    return sorted(locations, key=lambda loc: (loc.file, loc.line, loc.token))


def check_strict_substitutions(trees: Iterable[ProtoFile], mapping: Dict[str, str]) -> None:
    """Fail if any annotation in *trees* has no entry in *mapping*.

    Raises:
        StrictSubstitutionError: listing every unmapped occurrence by
            file and line, after a summary of the distinct names.
    """
    missing: Set[str] = set()
    locations: List[AnnotationLocation] = []
    for tree in trees:
        for loc in collect_annotation_locations(tree):
            if loc.name not in mapping:
                missing.add(loc.name)
                locations.append(loc)
    if missing:
        raise StrictSubstitutionError(sorted(missing), locations)


# ---------------------------------------------------------------------------
# Block comment conversion
# ---------------------------------------------------------------------------

def _convert_comment(comment: Comment) -> Tuple[Optional[Comment], int]:
    if not comment.cstyle:
        return comment, 0
    lines = []
    for raw in comment.lines:
        text = raw.strip()
        if text.startswith("*"):
            text = text[1:]
            if text.startswith(" "):
                text = text[1:]
        text = text.rstrip()
        lines.append(" " + text if text else "")

    leading = 0
    while leading < len(lines) and not lines[leading]:
        leading += 1
    lines = lines[leading:]
    while lines and not lines[-1]:
        lines.pop()

    comment.cstyle = False
    comment.lines = lines or [""]
    comment.line += leading if lines else 0
    return comment, 1


def convert_block_comments(tree: ProtoFile) -> int:
    """Turn every ``/* ... */`` comment into ``//`` style; returns how many were converted."""
    tree.elements, total = _rewrite_comments(tree.elements, _convert_comment)
    return total
