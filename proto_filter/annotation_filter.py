"""Annotation-driven removal of services, methods and fields, plus orphan cleanup.

All functions operate on one file's tree and rebuild container element
lists rather than splicing them. Each returns the number of nodes it
removed; an empty name list is a no-op returning 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from .annotations import extract_annotations, has_any
from .config import AnnotationRule
from .models import DECLARATION_TYPES, Enum, Extend, Field, MapField, Message, Method, Node, OneOf, ProtoFile, Service
from .parser import is_user_type, qualified_name, qualify_reference

logger = logging.getLogger(__name__)


@dataclass
class AnnotationFilterResult:
    services_removed: int = 0
    methods_removed: int = 0
    fields_removed: int = 0
    orphans_removed: int = 0


# ---------------------------------------------------------------------------
# Exclude mode
# ---------------------------------------------------------------------------

def filter_services_by_annotation(tree: ProtoFile, names: Optional[Iterable[str]]) -> int:
    """Remove services whose own comment carries one of *names*."""
    wanted = set(names or ())
    if not wanted:
        return 0
    before = len(tree.elements)
    tree.elements = [
        elem for elem in tree.elements
        if not (isinstance(elem, Service) and has_any([elem.comment], wanted))
    ]
    return before - len(tree.elements)


def filter_methods_by_annotation(tree: ProtoFile, names: Optional[Iterable[str]]) -> int:
    """Remove RPC methods whose comment carries one of *names*."""
    wanted = set(names or ())
    if not wanted:
        return 0
    return _filter_methods(tree, lambda method: has_any([method.comment], wanted))


def filter_fields_by_annotation(tree: ProtoFile, names: Optional[Iterable[str]]) -> int:
    """Remove fields whose leading or inline comment carries one of *names*.

    Covers normal, map and oneof-member fields, recursing into nested
    messages and extend blocks.
    """
    wanted = set(names or ())
    if not wanted:
        return 0
    removed = 0
    for elem in tree.elements:
        if isinstance(elem, (Message, Extend)):
            removed += _filter_fields(elem, wanted)
    return removed


def _filter_fields(container, wanted: Set[str]) -> int:
    removed = 0
    kept: List[Node] = []
    for elem in container.elements:
        if isinstance(elem, (Field, MapField)) and has_any([elem.comment, elem.inline_comment], wanted):
            removed += 1
            continue
        if isinstance(elem, (Message, Extend, OneOf)):
            removed += _filter_fields(elem, wanted)
        # A oneof with no member left is not valid proto.
        if isinstance(elem, OneOf) and not any(isinstance(m, Field) for m in elem.elements):
            logger.debug("Dropping emptied oneof %s", elem.name)
            continue
        kept.append(elem)
    container.elements = kept
    return removed


# ---------------------------------------------------------------------------
# Include mode
# ---------------------------------------------------------------------------

def include_services_by_annotation(tree: ProtoFile, names: Optional[Iterable[str]]) -> int:
    """Keep only services carrying one of *names*, or carrying no annotation at all."""
    wanted = set(names or ())
    if not wanted:
        return 0

    def keep(service: Service) -> bool:
        found = extract_annotations(service.comment)
        return not found or any(name in wanted for name in found)

    before = len(tree.elements)
    tree.elements = [
        elem for elem in tree.elements
        if not isinstance(elem, Service) or keep(elem)
    ]
    return before - len(tree.elements)


def include_methods_by_annotation(tree: ProtoFile, names: Optional[Iterable[str]]) -> int:
    """Keep only RPC methods whose comment carries one of *names*."""
    wanted = set(names or ())
    if not wanted:
        return 0
    return _filter_methods(tree, lambda method: not has_any([method.comment], wanted))


def _filter_methods(tree: ProtoFile, should_remove) -> int:
    removed = 0
    for svc in tree.services:
        kept: List[Node] = []
        for elem in svc.elements:
            if isinstance(elem, Method) and should_remove(elem):
                removed += 1
                continue
            kept.append(elem)
        svc.elements = kept
    return removed


# ---------------------------------------------------------------------------
# Structural cleanup
# ---------------------------------------------------------------------------

def remove_empty_services(tree: ProtoFile) -> int:
    before = len(tree.elements)
    tree.elements = [
        elem for elem in tree.elements
        if not (isinstance(elem, Service) and not elem.methods)
    ]
    return before - len(tree.elements)


def has_remaining_definitions(tree: ProtoFile) -> bool:
    return any(isinstance(elem, DECLARATION_TYPES) for elem in tree.elements)


def collect_referenced_types(tree: ProtoFile, pkg: str) -> Set[str]:
    """FQNs referenced by surviving RPC methods and message fields.

    Every field counts, including a message's references to itself or
    to its nested types, so a self-recursive message keeps itself alive.
    """
    refs: Set[str] = set()

    def add(type_name: str) -> None:
        if not is_user_type(type_name):
            return
        ref = qualify_reference(pkg, type_name)
        refs.add(ref)
        if "." in type_name and pkg and not type_name.startswith("."):
            refs.add(qualified_name(pkg, type_name))

    for elem in tree.elements:
        if isinstance(elem, Service):
            for method in elem.methods:
                add(method.request_type)
                add(method.response_type)
        elif isinstance(elem, (Message, Extend)):
            if isinstance(elem, Extend):
                add(elem.name)
            for ref in _raw_field_types(elem):
                add(ref)
    return refs


def _raw_field_types(container) -> List[str]:
    types: List[str] = []
    for elem in container.elements:
        if isinstance(elem, (Field, MapField)):
            types.append(elem.type_name)
        elif isinstance(elem, OneOf):
            types.extend(m.type_name for m in elem.elements if isinstance(m, Field))
        elif isinstance(elem, Message):
            types.extend(_raw_field_types(elem))
    return types


def _is_referenced(fqn: str, refs: Set[str]) -> bool:
    if fqn in refs:
        return True
    prefix = fqn + "."
    return any(ref.startswith(prefix) for ref in refs)


def remove_orphaned_definitions(tree: ProtoFile, pkg: str, pinned: Iterable[str] = ()) -> int:
    """Iteratively remove messages and enums nothing references any more.

    *pinned* FQNs (referenced from other files) are never removed.
    Repeats until an iteration removes nothing; returns the total removed.
    """
    pinned_set = set(pinned)
    limit = sum(1 for elem in tree.elements if isinstance(elem, (Message, Enum))) + 1
    total = 0
    for iteration in range(limit):
        refs = collect_referenced_types(tree, pkg) | pinned_set
        kept: List[Node] = []
        removed = 0
        for elem in tree.elements:
            if isinstance(elem, (Message, Enum)) and not _is_referenced(qualified_name(pkg, elem.name), refs):
                logger.debug("Removing orphaned %s from %s", elem.name, tree.path)
                removed += 1
                continue
            kept.append(elem)
        tree.elements = kept
        total += removed
        if removed == 0:
            logger.debug("Orphan elimination on %s settled after %d iterations", tree.path, iteration + 1)
            break
    return total


# ---------------------------------------------------------------------------
# Per-file driver
# ---------------------------------------------------------------------------

def apply_annotation_rule(
    tree: ProtoFile,
    pkg: str,
    rule: AnnotationRule,
    pinned: Iterable[str] = (),
) -> AnnotationFilterResult:
    """Run the exclude- or include-mode annotation filter over one file.

    Empty services are dropped afterwards, and orphan elimination only
    runs when a service or method was removed.
    """
    result = AnnotationFilterResult()
    if rule.exclude:
        result.services_removed = filter_services_by_annotation(tree, rule.exclude)
        result.methods_removed = filter_methods_by_annotation(tree, rule.exclude)
        result.fields_removed = filter_fields_by_annotation(tree, rule.exclude)
    elif rule.include:
        result.methods_removed = include_methods_by_annotation(tree, rule.include)
        result.services_removed = include_services_by_annotation(tree, rule.include)
    else:
        return result

    remove_empty_services(tree)
    if result.services_removed or result.methods_removed:
        result.orphans_removed = remove_orphaned_definitions(tree, pkg, pinned)

    logger.debug(
        "%s: removed %d services, %d methods, %d fields, %d orphans",
        tree.path,
        result.services_removed,
        result.methods_removed,
        result.fields_removed,
        result.orphans_removed,
    )
    return result
