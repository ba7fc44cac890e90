"""Format a parsed tree back to .proto source and write it to disk.

The output re-parses to an equivalent tree: free-standing comments are
always followed by a blank line so they never attach to the next
declaration on the way back in.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .errors import WriteError
from .models import (
    Comment,
    CommentBlock,
    Enum,
    EnumValue,
    Extend,
    Field,
    Import,
    MapField,
    Message,
    Method,
    Node,
    OneOf,
    Option,
    Package,
    ProtoFile,
    Service,
    Statement,
    Syntax,
)

logger = logging.getLogger(__name__)

INDENT = "  "

_BLOCK_TYPES = (Message, Enum, Service, Extend, OneOf)


def format_proto(tree: ProtoFile) -> str:
    lines: List[str] = []
    _emit_elements(tree.elements, 0, lines, top_level=True)
    return "\n".join(lines).rstrip("\n") + "\n"


def write_proto_file(tree: ProtoFile, output_path: Path) -> None:
    """Format *tree* and write it to *output_path*, creating parent directories."""
    output_path = Path(output_path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(format_proto(tree), encoding="utf-8")
    except OSError as exc:
        raise WriteError(str(output_path), exc) from exc
    logger.debug("Wrote %s", output_path)


# ---------------------------------------------------------------------------
# Elements
# ---------------------------------------------------------------------------

def _separated(prev: Node, elem: Node, top_level: bool) -> bool:
    if isinstance(prev, CommentBlock):
        return True
    if top_level:
        return not (type(prev) is type(elem) and isinstance(elem, (Import, Option)))
    return isinstance(elem, _BLOCK_TYPES) or isinstance(prev, _BLOCK_TYPES)


def _emit_elements(elements: List[Node], depth: int, lines: List[str], top_level: bool = False) -> None:
    prev: Optional[Node] = None
    for elem in elements:
        if prev is not None and _separated(prev, elem, top_level):
            lines.append("")
        _emit(elem, depth, lines)
        prev = elem


def _emit(elem: Node, depth: int, lines: List[str]) -> None:
    pad = INDENT * depth
    if isinstance(elem, CommentBlock):
        _emit_comment(elem.comment, pad, lines)
        return

    _emit_comment(elem.comment, pad, lines)

    if isinstance(elem, (Message, Enum, Service, Extend, OneOf)):
        keyword = {
            Message: "message",
            Enum: "enum",
            Service: "service",
            Extend: "extend",
            OneOf: "oneof",
        }[type(elem)]
        _emit_block(f"{pad}{keyword} {elem.name}", elem.elements, elem.inline_comment, depth, lines)
        return

    if isinstance(elem, Method):
        head = (
            f"{pad}rpc {elem.name}({'stream ' if elem.request_stream else ''}{elem.request_type})"
            f" returns ({'stream ' if elem.response_stream else ''}{elem.response_type})"
        )
        if elem.has_body or elem.elements:
            _emit_block(head, elem.elements, elem.inline_comment, depth, lines)
        else:
            lines.append(head + ";" + _inline(elem.inline_comment))
        return

    lines.append(pad + _statement_text(elem) + _inline(elem.inline_comment))


def _emit_block(head: str, elements: List[Node], inline: Optional[Comment], depth: int, lines: List[str]) -> None:
    if not elements:
        lines.append(head + " {}" + _inline(inline))
        return
    lines.append(head + " {")
    _emit_elements(elements, depth + 1, lines)
    lines.append(INDENT * depth + "}" + _inline(inline))


def _options(options: str) -> str:
    return f" [{options}]" if options else ""


def _statement_text(elem: Node) -> str:
    if isinstance(elem, Syntax):
        return f"{elem.keyword} = {elem.value};"
    if isinstance(elem, Package):
        return f"package {elem.name};"
    if isinstance(elem, Import):
        kind = f"{elem.kind} " if elem.kind else ""
        return f'import {kind}"{elem.path}";'
    if isinstance(elem, Option):
        return f"option {elem.name} = {elem.value};"
    if isinstance(elem, Statement):
        return f"{elem.keyword} {elem.body};"
    if isinstance(elem, Field):
        label = f"{elem.label} " if elem.label else ""
        return f"{label}{elem.type_name} {elem.name} = {elem.number}{_options(elem.options)};"
    if isinstance(elem, MapField):
        return (
            f"map<{elem.key_type}, {elem.type_name}> {elem.name} = {elem.number}"
            f"{_options(elem.options)};"
        )
    if isinstance(elem, EnumValue):
        return f"{elem.name} = {elem.number}{_options(elem.options)};"
    raise TypeError(f"cannot format {type(elem).__name__}")


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

def _emit_comment(comment: Optional[Comment], pad: str, lines: List[str]) -> None:
    if comment is None:
        return
    if comment.cstyle:
        body = "\n".join(comment.lines)
        lines.extend((pad + "/*" + body + "*/").split("\n"))
        return
    for line in comment.lines:
        lines.append(pad + "//" + line)


def _inline(comment: Optional[Comment]) -> str:
    if comment is None:
        return ""
    if comment.cstyle:
        return " /*" + "\n".join(comment.lines) + "*/"
    return " //" + " ".join(comment.lines)
