"""Parser for .proto source files.

Turns source text into the mutable tree of :mod:`proto_filter.models`,
keeping every comment either attached to the declaration it precedes,
as an inline comment on the line a statement ends, or as a free-standing
:class:`~proto_filter.models.CommentBlock`.

Attachment rules:

- consecutive ``//`` lines form one comment; a ``/* */`` comment is
  always a comment on its own
- the comment group ending on the line right above a statement is that
  statement's leading comment
- a comment starting on the line a statement ends is its inline comment
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

from .errors import ParseError
from .models import (
    Comment,
    CommentBlock,
    Definition,
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

PROTO_SUFFIX = ".proto"

SCALAR_TYPES: Set[str] = {
    "double", "float", "int32", "int64", "uint32", "uint64",
    "sint32", "sint64", "fixed32", "fixed64", "sfixed32", "sfixed64",
    "bool", "string", "bytes",
}

FIELD_LABELS = {"optional", "repeated", "required"}


# ===================================================================
# Tokenizer
# ===================================================================

@dataclass
class Token:
    kind: str
    value: str
    line: int
    column: int

    @property
    def end_line(self) -> int:
        return self.line + self.value.count("\n")


_TOKEN_SPEC = [
    ("ws", r"\s+"),
    ("line_comment", r"//[^\n]*"),
    ("block_comment", r"/\*.*?\*/"),
    ("string", r"\"(?:[^\"\\\n]|\\.)*\"|'(?:[^'\\\n]|\\.)*'"),
    ("number", r"0[xX][0-9A-Fa-f]+|\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?"),
    ("ident", r"\.?[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*"),
    ("symbol", r"[{}()\[\];=,<>:+\-]"),
]
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{rx})" for name, rx in _TOKEN_SPEC), re.DOTALL)


def tokenize(source: str, file: str = "<string>") -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    line = 1
    line_start = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            column = pos - line_start + 1
            if source.startswith("/*", pos):
                raise ParseError(file, line, column, "unterminated block comment")
            if source[pos] in "\"'":
                raise ParseError(file, line, column, "unterminated string literal")
            raise ParseError(file, line, column, f"unexpected character {source[pos]!r}")
        kind = match.lastgroup or ""
        value = match.group(0)
        if kind != "ws":
            tokens.append(Token(kind, value, line, pos - line_start + 1))
        newlines = value.count("\n")
        if newlines:
            line += newlines
            line_start = pos + value.rfind("\n") + 1
        pos = match.end()
    return tokens


def render_tokens(tokens: List[Token]) -> str:
    """Join constant/option tokens back into canonical source text."""
    out: List[str] = []
    prev: Optional[Token] = None
    for tok in tokens:
        if prev is not None and _needs_space(prev, tok):
            out.append(" ")
        out.append(tok.value)
        prev = tok
    return "".join(out)


def _needs_space(prev: Token, tok: Token) -> bool:
    if prev.value in ("(", "[", "<", "-", "+") and prev.kind == "symbol":
        return False
    if tok.kind == "symbol" and tok.value in (")", "]", ">", ",", ";", ":"):
        return False
    if tok.kind == "ident" and tok.value.startswith(".") and prev.value == ")":
        return False
    return True


# ===================================================================
# Comments
# ===================================================================

def _comment_from_tokens(tokens: List[Token]) -> Comment:
    first = tokens[0]
    if first.kind == "block_comment":
        return Comment(first.value[2:-2].split("\n"), cstyle=True, line=first.line)
    return Comment([tok.value[2:] for tok in tokens], cstyle=False, line=first.line)


def _group_comments(tokens: List[Token]) -> List[List[Token]]:
    groups: List[List[Token]] = []
    for tok in tokens:
        if (
            groups
            and tok.kind == "line_comment"
            and groups[-1][-1].kind == "line_comment"
            and tok.line == groups[-1][-1].end_line + 1
        ):
            groups[-1].append(tok)
        else:
            groups.append([tok])
    return groups


# ===================================================================
# Parser
# ===================================================================

class ProtoParser:
    """Recursive-descent parser for proto2/proto3/editions source text."""

    def __init__(self, source: str, file: str = "<string>") -> None:
        self.file = file
        self.tokens = tokenize(source, file)
        self.pos = 0
        self._last = Token("bof", "", 0, 0)

    def parse(self) -> ProtoFile:
        elements = self._parse_body(self._parse_file_statement, closing=None)
        return ProtoFile(path=self.file, elements=elements)

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> Optional[Token]:
        """Return the *offset*-th upcoming non-comment token without consuming it."""
        count = 0
        idx = self.pos
        while idx < len(self.tokens):
            if not self.tokens[idx].kind.endswith("comment"):
                if count == offset:
                    return self.tokens[idx]
                count += 1
            idx += 1
        return None

    def _next(self) -> Token:
        while self.pos < len(self.tokens) and self.tokens[self.pos].kind.endswith("comment"):
            self.pos += 1
        if self.pos >= len(self.tokens):
            self._fail_eof()
        tok = self.tokens[self.pos]
        self.pos += 1
        self._last = tok
        return tok

    def _expect(self, value: str) -> Token:
        tok = self._next()
        if tok.value != value:
            self._fail(tok, f"expected {value!r}, got {tok.value!r}")
        return tok

    def _expect_kind(self, kind: str, what: str) -> Token:
        tok = self._next()
        if tok.kind != kind:
            self._fail(tok, f"expected {what}, got {tok.value!r}")
        return tok

    def _accept(self, value: str) -> bool:
        tok = self._peek()
        if tok is not None and tok.value == value and tok.kind in ("symbol", "ident"):
            self._next()
            return True
        return False

    def _fail(self, tok: Token, reason: str) -> None:
        raise ParseError(self.file, tok.line, tok.column, reason)

    def _fail_eof(self) -> None:
        last = self.tokens[-1] if self.tokens else Token("eof", "", 1, 1)
        raise ParseError(self.file, last.end_line, last.column, "unexpected end of file")

    def _collect_until(self, stops: Tuple[str, ...]) -> List[Token]:
        """Consume tokens up to (not including) a stop symbol at nesting depth 0."""
        collected: List[Token] = []
        depth = 0
        while True:
            tok = self._peek()
            if tok is None:
                self._fail_eof()
            if depth == 0 and tok.kind == "symbol" and tok.value in stops:
                return collected
            tok = self._next()
            if tok.kind == "symbol" and tok.value in "{[(<":
                depth += 1
            elif tok.kind == "symbol" and tok.value in "}])>":
                depth -= 1
                if depth < 0:
                    self._fail(tok, f"unbalanced {tok.value!r}")
            collected.append(tok)

    # ------------------------------------------------------------------
    # Bodies and comment attachment
    # ------------------------------------------------------------------

    def _take_comments(self) -> List[Token]:
        comments: List[Token] = []
        while self.pos < len(self.tokens) and self.tokens[self.pos].kind.endswith("comment"):
            comments.append(self.tokens[self.pos])
            self.pos += 1
        return comments

    def _parse_body(
        self,
        parse_statement: Callable[[Optional[Comment]], Optional[Node]],
        closing: Optional[str],
    ) -> List[Node]:
        elements: List[Node] = []
        while True:
            groups = _group_comments(self._take_comments())
            tok = self._peek()
            at_end = tok is None or (closing is not None and tok.kind == "symbol" and tok.value == closing)
            if tok is None and closing is not None:
                self._fail_eof()

            leading: Optional[Comment] = None
            if not at_end and groups and groups[-1][-1].end_line >= tok.line - 1:
                leading = _comment_from_tokens(groups.pop())
            elements.extend(CommentBlock(_comment_from_tokens(g)) for g in groups)
            if at_end:
                return elements

            node = parse_statement(leading)
            if node is None:
                continue
            inline = self._take_inline_comment()
            if inline is not None:
                node.inline_comment = inline
            elements.append(node)

    def _take_inline_comment(self) -> Optional[Comment]:
        if self.pos < len(self.tokens):
            tok = self.tokens[self.pos]
            if tok.kind.endswith("comment") and tok.line == self._last.end_line:
                self.pos += 1
                return _comment_from_tokens([tok])
        return None

    def _parse_block(self, parse_statement: Callable[[Optional[Comment]], Optional[Node]]) -> List[Node]:
        self._expect("{")
        elements = self._parse_body(parse_statement, closing="}")
        self._expect("}")
        return elements

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _parse_file_statement(self, comment: Optional[Comment]) -> Optional[Node]:
        tok = self._peek()
        if tok.value == ";":
            self._next()
            return None
        keyword = tok.value
        if keyword in ("syntax", "edition"):
            self._next()
            self._expect("=")
            value = self._expect_kind("string", "string literal")
            self._expect(";")
            return Syntax(value=value.value, keyword=keyword, comment=comment)
        if keyword == "package":
            self._next()
            name = self._expect_kind("ident", "package name")
            self._expect(";")
            return Package(name=name.value, comment=comment)
        if keyword == "import":
            self._next()
            kind = ""
            if self._peek().value in ("public", "weak"):
                kind = self._next().value
            path = self._expect_kind("string", "import path")
            self._expect(";")
            return Import(path=path.value[1:-1], kind=kind, comment=comment)
        if keyword == "option":
            return self._parse_option(comment)
        if keyword == "message":
            return self._parse_message(comment)
        if keyword == "enum":
            return self._parse_enum(comment)
        if keyword == "service":
            return self._parse_service(comment)
        if keyword == "extend":
            return self._parse_extend(comment)
        self._fail(tok, f"unexpected {tok.value!r} at top level")
        return None

    def _parse_option(self, comment: Optional[Comment]) -> Option:
        self._expect("option")
        name = render_tokens(self._collect_until(("=",)))
        self._expect("=")
        value = render_tokens(self._collect_until((";",)))
        self._expect(";")
        return Option(name=name, value=value, comment=comment)

    def _close_declaration(self) -> None:
        self._expect("}")
        tok = self._peek()
        if tok is not None and tok.value == ";" and tok.line == self._last.line:
            self._next()

    def _parse_message(self, comment: Optional[Comment]) -> Message:
        self._expect("message")
        name = self._expect_kind("ident", "message name")
        self._expect("{")
        elements = self._parse_body(self._parse_message_statement, closing="}")
        self._close_declaration()
        return Message(name=name.value, elements=elements, comment=comment)

    def _parse_extend(self, comment: Optional[Comment]) -> Extend:
        self._expect("extend")
        name = self._expect_kind("ident", "extended type")
        self._expect("{")
        elements = self._parse_body(self._parse_message_statement, closing="}")
        self._close_declaration()
        return Extend(name=name.value, elements=elements, comment=comment)

    def _is_declaration(self, keyword: str) -> bool:
        first, second, third = self._peek(), self._peek(1), self._peek(2)
        return (
            first.value == keyword
            and second is not None and second.kind == "ident"
            and third is not None and third.value == "{"
        )

    def _parse_message_statement(self, comment: Optional[Comment]) -> Optional[Node]:
        tok = self._peek()
        if tok.value == ";":
            self._next()
            return None
        if self._is_declaration("message"):
            return self._parse_message(comment)
        if self._is_declaration("enum"):
            return self._parse_enum(comment)
        if self._is_declaration("extend"):
            return self._parse_extend(comment)
        if self._is_declaration("oneof"):
            return self._parse_oneof(comment)
        following = self._peek(1)
        if tok.value == "option":
            return self._parse_option(comment)
        if tok.value in ("reserved", "extensions") and following is not None and following.kind in ("number", "string"):
            return self._parse_statement(comment)
        if tok.value == "reserved" and following is not None and self._peek(2) is not None and self._peek(2).value in (",", ";"):
            return self._parse_statement(comment)
        if tok.value == "map" and following is not None and following.value == "<":
            return self._parse_map_field(comment)
        return self._parse_field(comment)

    def _parse_statement(self, comment: Optional[Comment]) -> Statement:
        keyword = self._next().value
        body = render_tokens(self._collect_until((";",)))
        self._expect(";")
        return Statement(keyword=keyword, body=body, comment=comment)

    def _parse_field_options(self) -> str:
        if not self._accept("["):
            return ""
        options = render_tokens(self._collect_until(("]",)))
        self._expect("]")
        return options

    def _parse_field(self, comment: Optional[Comment], allow_label: bool = True) -> Field:
        label = ""
        tok = self._peek()
        following = self._peek(1)
        if allow_label and tok.value in FIELD_LABELS and following is not None and following.kind == "ident" \
                and self._peek(2) is not None and self._peek(2).value != "=":
            label = self._next().value
        type_tok = self._expect_kind("ident", "field type")
        if type_tok.value == "group":
            self._fail(type_tok, "proto2 groups are not supported")
        name = self._expect_kind("ident", "field name")
        self._expect("=")
        number = render_tokens(self._collect_until(("[", ";")))
        options = self._parse_field_options()
        self._expect(";")
        return Field(
            name=name.value,
            type_name=type_tok.value,
            number=number,
            label=label,
            options=options,
            comment=comment,
        )

    def _parse_map_field(self, comment: Optional[Comment]) -> MapField:
        self._expect("map")
        self._expect("<")
        key_type = self._expect_kind("ident", "map key type")
        self._expect(",")
        value_type = self._expect_kind("ident", "map value type")
        self._expect(">")
        name = self._expect_kind("ident", "field name")
        self._expect("=")
        number = render_tokens(self._collect_until(("[", ";")))
        options = self._parse_field_options()
        self._expect(";")
        return MapField(
            name=name.value,
            key_type=key_type.value,
            type_name=value_type.value,
            number=number,
            options=options,
            comment=comment,
        )

    def _parse_oneof(self, comment: Optional[Comment]) -> OneOf:
        self._expect("oneof")
        name = self._expect_kind("ident", "oneof name")
        self._expect("{")
        elements = self._parse_body(self._parse_oneof_statement, closing="}")
        self._close_declaration()
        return OneOf(name=name.value, elements=elements, comment=comment)

    def _parse_oneof_statement(self, comment: Optional[Comment]) -> Optional[Node]:
        tok = self._peek()
        if tok.value == ";":
            self._next()
            return None
        if tok.value == "option":
            return self._parse_option(comment)
        return self._parse_field(comment, allow_label=False)

    def _parse_enum(self, comment: Optional[Comment]) -> Enum:
        self._expect("enum")
        name = self._expect_kind("ident", "enum name")
        self._expect("{")
        elements = self._parse_body(self._parse_enum_statement, closing="}")
        self._close_declaration()
        return Enum(name=name.value, elements=elements, comment=comment)

    def _parse_enum_statement(self, comment: Optional[Comment]) -> Optional[Node]:
        tok = self._peek()
        if tok.value == ";":
            self._next()
            return None
        following = self._peek(1)
        if tok.value == "option":
            return self._parse_option(comment)
        if tok.value == "reserved" and following is not None and following.value != "=":
            return self._parse_statement(comment)
        name = self._expect_kind("ident", "enum value name")
        self._expect("=")
        number = render_tokens(self._collect_until(("[", ";")))
        options = self._parse_field_options()
        self._expect(";")
        return EnumValue(name=name.value, number=number, options=options, comment=comment)

    def _parse_service(self, comment: Optional[Comment]) -> Service:
        self._expect("service")
        name = self._expect_kind("ident", "service name")
        self._expect("{")
        elements = self._parse_body(self._parse_service_statement, closing="}")
        self._close_declaration()
        return Service(name=name.value, elements=elements, comment=comment)

    def _parse_service_statement(self, comment: Optional[Comment]) -> Optional[Node]:
        tok = self._peek()
        if tok.value == ";":
            self._next()
            return None
        if tok.value == "option":
            return self._parse_option(comment)
        if tok.value == "rpc":
            return self._parse_method(comment)
        self._fail(tok, f"unexpected {tok.value!r} in service")
        return None

    def _parse_rpc_type(self) -> Tuple[str, bool]:
        self._expect("(")
        stream = False
        tok = self._peek()
        following = self._peek(1)
        if tok.value == "stream" and following is not None and following.kind == "ident":
            self._next()
            stream = True
        type_tok = self._expect_kind("ident", "message type")
        self._expect(")")
        return type_tok.value, stream

    def _parse_method(self, comment: Optional[Comment]) -> Method:
        self._expect("rpc")
        name = self._expect_kind("ident", "method name")
        request, request_stream = self._parse_rpc_type()
        self._expect("returns")
        response, response_stream = self._parse_rpc_type()
        method = Method(
            name=name.value,
            request_type=request,
            response_type=response,
            request_stream=request_stream,
            response_stream=response_stream,
            comment=comment,
        )
        if self._peek() is not None and self._peek().value == "{":
            method.has_body = True
            self._expect("{")
            method.elements = self._parse_body(self._parse_method_statement, closing="}")
            self._close_declaration()
        else:
            self._expect(";")
        return method

    def _parse_method_statement(self, comment: Optional[Comment]) -> Optional[Node]:
        tok = self._peek()
        if tok.value == ";":
            self._next()
            return None
        if tok.value == "option":
            return self._parse_option(comment)
        self._fail(tok, f"unexpected {tok.value!r} in rpc body")
        return None


# ===================================================================
# File-level helpers
# ===================================================================

def discover_proto_files(input_dir: Path) -> List[str]:
    """Return sorted relative POSIX paths of every ``*.proto`` file under *input_dir*."""
    root = Path(input_dir)
    files = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in filenames:
            if filename.endswith(PROTO_SUFFIX):
                files.append((Path(dirpath) / filename).relative_to(root).as_posix())
    return sorted(files)


def parse_source(source: str, file: str = "<string>") -> ProtoFile:
    return ProtoParser(source, file).parse()


def parse_proto_file(path: Path, rel: Optional[str] = None) -> ProtoFile:
    """Parse the file at *path*; ``rel`` is the name used in the tree and in errors."""
    name = rel or str(path)
    try:
        source = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(name, 0, 0, f"reading file: {exc}") from exc
    tree = parse_source(source, name)
    logger.debug("Parsed %s: %d top-level elements", name, len(tree.elements))
    return tree


def extract_package(tree: ProtoFile) -> str:
    pkg = ""
    for elem in tree.elements:
        if isinstance(elem, Package):
            pkg = elem.name
    return pkg


def qualified_name(pkg: str, name: str) -> str:
    return f"{pkg}.{name}" if pkg else name


def qualify_reference(pkg: str, type_name: str) -> str:
    """Qualify a bare type name with *pkg*; dotted names are kept, minus a leading dot."""
    if type_name.startswith("."):
        return type_name[1:]
    if "." in type_name:
        return type_name
    return qualified_name(pkg, type_name)


def is_user_type(type_name: str) -> bool:
    return bool(type_name) and type_name not in SCALAR_TYPES


def message_references(message: Message, pkg: str) -> List[str]:
    """Referenced type FQNs of a message's fields, nested messages included."""
    refs: List[str] = []
    for elem in message.elements:
        if isinstance(elem, (Field, MapField)):
            if is_user_type(elem.type_name):
                refs.append(qualify_reference(pkg, elem.type_name))
        elif isinstance(elem, OneOf):
            for member in elem.elements:
                if isinstance(member, Field) and is_user_type(member.type_name):
                    refs.append(qualify_reference(pkg, member.type_name))
        elif isinstance(elem, Message):
            refs.extend(message_references(elem, pkg))
    return refs


def service_references(service: Service, pkg: str) -> List[str]:
    refs: List[str] = []
    for method in service.methods:
        for type_name in (method.request_type, method.response_type):
            if is_user_type(type_name):
                refs.append(qualify_reference(pkg, type_name))
    return refs


def extract_definitions(tree: ProtoFile, pkg: str, file: Optional[str] = None) -> List[Definition]:
    """One :class:`Definition` per top-level service, message and enum."""
    file = file if file is not None else tree.path
    defs: List[Definition] = []
    for elem in tree.elements:
        if isinstance(elem, Service):
            refs = service_references(elem, pkg)
            kind = "service"
        elif isinstance(elem, Message):
            refs = message_references(elem, pkg)
            kind = "message"
        elif isinstance(elem, Enum):
            refs = []
            kind = "enum"
        else:
            continue
        fqn = qualified_name(pkg, elem.name)
        deduped: Dict[str, None] = dict.fromkeys(r for r in refs if r != fqn)
        defs.append(Definition(fqn=fqn, kind=kind, file=file, references=tuple(deduped), package=pkg))
    return defs
