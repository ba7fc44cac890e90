"""Exception hierarchy shared by the engine and the CLI.

Each error carries the process exit code the CLI reports for it:
``1`` for I/O and argument problems, ``2`` for configuration semantics.
"""

from __future__ import annotations

from typing import List, Sequence

from .models import AnnotationLocation


class ProtoFilterError(Exception):
    exit_code = 1


class InputError(ProtoFilterError):
    """Bad command-line arguments or unusable input/output directories."""


class ConfigError(ProtoFilterError):
    exit_code = 2


class PatternError(ConfigError):
    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"invalid glob pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class ConflictError(ConfigError):
    def __init__(self, fqn: str, include_pattern: str, exclude_pattern: str) -> None:
        super().__init__(
            f"conflicting rules: {fqn!r} matches both include pattern "
            f"{include_pattern!r} and exclude pattern {exclude_pattern!r}"
        )
        self.fqn = fqn
        self.include_pattern = include_pattern
        self.exclude_pattern = exclude_pattern


class StrictSubstitutionError(ConfigError):
    """Annotations without a substitution mapping were found in strict mode."""

    def __init__(self, missing: Sequence[str], locations: Sequence[AnnotationLocation]) -> None:
        self.missing: List[str] = sorted(set(missing))
        self.locations: List[AnnotationLocation] = sorted(
            locations, key=lambda loc: (loc.file, loc.line, loc.token)
        )
        super().__init__(self._render())

    def _render(self) -> str:
        lines = [f"unsubstituted annotations found: {', '.join(self.missing)}"]
        lines.extend(f"  {loc}" for loc in self.locations)
        return "\n".join(lines)


class ParseError(ProtoFilterError):
    def __init__(self, file: str, line: int, column: int, reason: str) -> None:
        super().__init__(f"{file}:{line}:{column}: {reason}")
        self.file = file
        self.line = line
        self.column = column
        self.reason = reason


class WriteError(ProtoFilterError):
    def __init__(self, file: str, cause: OSError) -> None:
        super().__init__(f"writing {file}: {cause}")
        self.file = file
        self.cause = cause
