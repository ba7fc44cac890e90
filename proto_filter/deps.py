"""Dependency graph over top-level declarations across all input files."""

from __future__ import annotations

import logging
from collections import deque
from typing import Dict, Iterable, Iterator, List, Optional, Set

from .models import Definition

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Definitions keyed by FQN, with their outbound type references.

    The graph only grows. Filtering decisions live in separate kept
    sets computed from it.
    """

    def __init__(self) -> None:
        self.nodes: Dict[str, Definition] = {}
        self.edges: Dict[str, List[str]] = {}
        self.file_map: Dict[str, str] = {}
        self.packages: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, fqn: str) -> bool:
        return fqn in self.nodes

    def add_definition(self, definition: Definition) -> None:
        """Register *definition*; a repeated FQN overwrites the earlier entry."""
        self.nodes[definition.fqn] = definition
        self.edges[definition.fqn] = list(definition.references)
        self.file_map[definition.fqn] = definition.file
        self.packages[definition.fqn] = definition.package

    def all_fqns(self) -> List[str]:
        return sorted(self.nodes)

    def resolve(self, ref: str, pkg: str = "") -> str:
        """Map a reference made from package *pkg* onto a known declaration.

        Relative names are scoped the way protoc scopes them: inside
        *pkg* first, then each enclosing package, then as written.
        ``pkg.Outer.Inner`` resolves to ``pkg.Outer`` when only the outer
        declaration is registered. Unknown references come back unchanged.
        """
        if ref in self.nodes:
            return ref
        for scope in _scopes(pkg):
            found = self._lookup(f"{scope}.{ref}" if scope else ref, scope)
            if found is not None:
                return found
        return ref

    def _lookup(self, name: str, scope: str) -> Optional[str]:
        """Return *name* or its nearest enclosing declaration still inside *scope*."""
        while len(name) > len(scope):
            if name in self.nodes:
                return name
            if "." not in name:
                break
            name = name.rsplit(".", 1)[0]
        return None

    def transitive_deps(self, seeds: Iterable[str]) -> Set[str]:
        """Return *seeds* plus every FQN reachable from them (BFS)."""
        visited: Set[str] = set()
        queue: deque = deque()
        for fqn in seeds:
            if fqn not in visited:
                visited.add(fqn)
                queue.append(fqn)

        while queue:
            current = queue.popleft()
            pkg = self.packages.get(current, "")
            for dep in self.edges.get(current, ()):
                dep = self.resolve(dep, pkg)
                if dep not in visited:
                    visited.add(dep)
                    queue.append(dep)

        logger.debug("Transitive closure: %d FQNs", len(visited))
        return visited

    def required_files(self, fqns: Iterable[str]) -> Set[str]:
        return {self.file_map[fqn] for fqn in fqns if fqn in self.file_map}

    def references_from(self, fqns: Iterable[str], exclude_file: str) -> Set[str]:
        """References made by the given declarations living outside *exclude_file*."""
        refs: Set[str] = set()
        for fqn in fqns:
            if self.file_map.get(fqn) == exclude_file:
                continue
            pkg = self.packages.get(fqn, "")
            for dep in self.edges.get(fqn, ()):
                refs.add(self.resolve(dep, pkg))
        return refs


def _scopes(pkg: str) -> Iterator[str]:
    """Yield *pkg*, each enclosing package, then the root scope ``""``."""
    while pkg:
        yield pkg
        pkg = pkg.rsplit(".", 1)[0] if "." in pkg else ""
    yield ""
