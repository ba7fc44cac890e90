"""Core data models: the mutable .proto tree, graph definitions, and run records.

Tree nodes form a tagged union: every container (``ProtoFile``,
``Service``, ``Message``, ``Enum``, ``OneOf``, ``Extend``) holds an
ordered ``elements`` list of child nodes, and filtering rebuilds those
lists instead of splicing them in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass
class Comment:
    """Comment text attached to a node.

    ``lines`` holds the text after ``//`` (or between ``/*`` and ``*/``),
    one entry per source line. ``line`` is the 1-based source line of
    the first entry.
    """

    lines: List[str]
    cstyle: bool = False
    line: int = 0


# ---------------------------------------------------------------------------
# File-level statements
# ---------------------------------------------------------------------------

@dataclass
class Syntax:
    value: str
    keyword: str = "syntax"
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None


@dataclass
class Package:
    name: str
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None


@dataclass
class Import:
    path: str
    kind: str = ""
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None


@dataclass
class Option:
    name: str
    value: str
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None


@dataclass
class Statement:
    """Any statement kept verbatim: ``reserved``, ``extensions`` and the like."""

    keyword: str
    body: str
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None


@dataclass
class CommentBlock:
    """A comment not attached to any declaration."""

    comment: Comment


# ---------------------------------------------------------------------------
# Message members
# ---------------------------------------------------------------------------

@dataclass
class Field:
    name: str
    type_name: str
    number: str
    label: str = ""
    options: str = ""
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None


@dataclass
class MapField:
    name: str
    key_type: str
    type_name: str
    number: str
    options: str = ""
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None


@dataclass
class OneOf:
    name: str
    elements: List["Node"] = field(default_factory=list)
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None


@dataclass
class EnumValue:
    name: str
    number: str
    options: str = ""
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------

@dataclass
class Method:
    name: str
    request_type: str
    response_type: str
    request_stream: bool = False
    response_stream: bool = False
    elements: List["Node"] = field(default_factory=list)
    has_body: bool = False
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None


@dataclass
class Service:
    name: str
    elements: List["Node"] = field(default_factory=list)
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None

    @property
    def methods(self) -> List[Method]:
        return [e for e in self.elements if isinstance(e, Method)]


@dataclass
class Message:
    name: str
    elements: List["Node"] = field(default_factory=list)
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None


@dataclass
class Enum:
    name: str
    elements: List["Node"] = field(default_factory=list)
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None


@dataclass
class Extend:
    name: str
    elements: List["Node"] = field(default_factory=list)
    comment: Optional[Comment] = None
    inline_comment: Optional[Comment] = None


Node = Union[
    Syntax, Package, Import, Option, Statement, CommentBlock,
    Field, MapField, OneOf, EnumValue,
    Method, Service, Message, Enum, Extend,
]

DECLARATION_TYPES = (Service, Message, Enum)


@dataclass
class ProtoFile:
    """Parsed representation of one ``.proto`` file."""

    path: str
    elements: List[Node] = field(default_factory=list)

    @property
    def services(self) -> List[Service]:
        return [e for e in self.elements if isinstance(e, Service)]

    @property
    def messages(self) -> List[Message]:
        return [e for e in self.elements if isinstance(e, Message)]

    @property
    def enums(self) -> List[Enum]:
        return [e for e in self.elements if isinstance(e, Enum)]


# ---------------------------------------------------------------------------
# Graph and reporting records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Definition:
    fqn: str
    kind: str
    file: str
    references: tuple = ()
    package: str = ""


@dataclass(frozen=True, order=True)
class AnnotationLocation:
    file: str
    line: int
    name: str
    token: str

    def __str__(self) -> str:
        return f"{self.file}:{self.line}: {self.token}"


@dataclass
class FilterStats:
    files_processed: int = 0
    total_definitions: int = 0
    included: int = 0
    excluded: int = 0
    services_removed: int = 0
    methods_removed: int = 0
    fields_removed: int = 0
    orphans_removed: int = 0
    substitutions: int = 0
    files_written: int = 0
