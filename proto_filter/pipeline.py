"""Pipeline coordinating parsing, filtering, substitution and writing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set

from .annotation_filter import apply_annotation_rule, has_remaining_definitions
from .config import FilterConfig
from .deps import DependencyGraph
from .models import FilterStats, ProtoFile
from .name_filter import apply_filter, prune_tree
from .parser import discover_proto_files, extract_definitions, extract_package, parse_proto_file
from .substitution import check_strict_substitutions, convert_block_comments, substitute_annotations
from .writer import write_proto_file

logger = logging.getLogger(__name__)


@dataclass
class ParsedFile:
    rel: str
    tree: ProtoFile
    pkg: str
    skip: bool = False


class FilterPipeline:
    """Runs one batch transformation from an input tree of .proto files to an output directory.

    The dependency graph is built from every file before any file is
    pruned, so cross-file closures are complete.
    """

    def __init__(self, cfg: Optional[FilterConfig] = None) -> None:
        self.cfg = cfg or FilterConfig()
        self.cfg.validate()
        self.stats = FilterStats()
        self.graph = DependencyGraph()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def load(self, input_dir: Path) -> List[ParsedFile]:
        files = discover_proto_files(input_dir)
        self.stats.files_processed = len(files)
        parsed = []
        for rel in files:
            tree = parse_proto_file(Path(input_dir) / rel, rel)
            parsed.append(ParsedFile(rel=rel, tree=tree, pkg=extract_package(tree)))
        return parsed

    def build_graph(self, files: List[ParsedFile]) -> DependencyGraph:
        graph = DependencyGraph()
        for pf in files:
            for definition in extract_definitions(pf.tree, pf.pkg, pf.rel):
                graph.add_definition(definition)
        self.graph = graph
        self.stats.total_definitions = len(graph)
        return graph

    def select(self) -> Optional[Set[str]]:
        """Compute the kept FQN set, or None when every declaration stays."""
        total = self.stats.total_definitions
        if self.cfg.is_pass_through():
            self.stats.included = total
            return None

        intent = apply_filter(self.cfg, self.graph.all_fqns())
        keep = self.graph.transitive_deps(intent)
        self.stats.included = len(keep & set(self.graph.nodes))
        self.stats.excluded = total - self.stats.included
        return keep

    def process(self, files: List[ParsedFile]) -> List[ParsedFile]:
        """Prune, annotation-filter and normalize comments; returns the files to emit."""
        keep = self.select()
        if keep is None:
            required = {pf.rel for pf in files}
        else:
            required = self.graph.required_files(keep)

        output: List[ParsedFile] = []
        for pf in files:
            if pf.rel not in required:
                logger.debug("Skipping %s: no kept declarations", pf.rel)
                continue
            if keep is not None:
                prune_tree(pf.tree, pf.pkg, keep)

            if self.cfg.has_annotations():
                pinned = self.graph.references_from(keep or (), exclude_file=pf.rel)
                result = apply_annotation_rule(pf.tree, pf.pkg, self.cfg.annotations, pinned)
                self.stats.services_removed += result.services_removed
                self.stats.methods_removed += result.methods_removed
                self.stats.fields_removed += result.fields_removed
                self.stats.orphans_removed += result.orphans_removed
                pf.skip = not has_remaining_definitions(pf.tree)
                if pf.skip:
                    logger.debug("Skipping %s: nothing left after annotation filtering", pf.rel)

            if self.cfg.convert_block_comments:
                convert_block_comments(pf.tree)
            output.append(pf)

        return [pf for pf in output if not pf.skip]

    def substitute(self, files: List[ParsedFile]) -> None:
        if self.cfg.strict_substitutions:
            check_strict_substitutions((pf.tree for pf in files), self.cfg.substitutions)
        if self.cfg.has_substitutions():
            for pf in files:
                self.stats.substitutions += substitute_annotations(pf.tree, self.cfg.substitutions)

    def write(self, files: List[ParsedFile], output_dir: Path) -> None:
        for pf in files:
            write_proto_file(pf.tree, Path(output_dir) / pf.rel)
            self.stats.files_written += 1

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, input_dir: Path, output_dir: Path) -> FilterStats:
        files = self.load(input_dir)
        if not files:
            logger.debug("No .proto files found in %s", input_dir)
            return self.stats
        self.build_graph(files)
        emitted = self.process(files)
        self.substitute(emitted)
        self.write(emitted, output_dir)
        logger.info("Wrote %d files to %s", self.stats.files_written, output_dir)
        return self.stats
