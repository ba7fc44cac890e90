"""Include/exclude glob rules over fully-qualified declaration names."""

from __future__ import annotations

import logging
from typing import Iterable, Set

from .config import FilterConfig
from .errors import ConflictError
from .matcher import first_match
from .models import DECLARATION_TYPES, ProtoFile
from .parser import qualified_name

logger = logging.getLogger(__name__)


def apply_filter(cfg: FilterConfig, all_fqns: Iterable[str]) -> Set[str]:
    """Return the FQNs the include/exclude rules keep.

    The result states intent only; callers widen it with
    :meth:`DependencyGraph.transitive_deps` before pruning.

    Raises:
        PatternError: a pattern is not a valid glob.
        ConflictError: an FQN matches both an include and an exclude pattern.
    """
    fqns = sorted(set(all_fqns))
    if cfg.is_pass_through():
        return set(fqns)

    if cfg.include:
        kept = {fqn for fqn in fqns if first_match(fqn, cfg.include) is not None}
    else:
        kept = set(fqns)

    if cfg.exclude:
        for fqn in sorted(kept):
            exclude_pattern = first_match(fqn, cfg.exclude)
            if exclude_pattern is None:
                continue
            if cfg.include:
                include_pattern = first_match(fqn, cfg.include)
                if include_pattern is not None:
                    raise ConflictError(fqn, include_pattern, exclude_pattern)
            kept.discard(fqn)

    logger.debug("Name filter kept %d of %d FQNs", len(kept), len(fqns))
    return kept


def prune_tree(tree: ProtoFile, pkg: str, keep: Set[str]) -> int:
    """Drop top-level services, messages and enums whose FQN is not in *keep*.

    Syntax, package, imports, options, extend blocks and free-standing
    comments are always kept. Returns the number of declarations removed.
    """
    before = len(tree.elements)
    tree.elements = [
        elem
        for elem in tree.elements
        if not isinstance(elem, DECLARATION_TYPES)
        or qualified_name(pkg, elem.name) in keep
    ]
    removed = before - len(tree.elements)
    if removed:
        logger.debug("Pruned %d declarations from %s", removed, tree.path)
    return removed
