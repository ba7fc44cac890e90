"""Filter configuration loaded from a YAML file."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

KNOWN_KEYS = {
    "include",
    "exclude",
    "annotations",
    "substitutions",
    "strict_substitutions",
    "convert_block_comments",
}


@dataclass
class AnnotationRule:
    """Annotation names driving service/method/field filtering.

    Accepts either the legacy flat list (an exclude list) or a mapping
    with ``include`` / ``exclude`` sub-lists.
    """

    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Any) -> "AnnotationRule":
        if raw is None:
            return cls()
        if isinstance(raw, list):
            return cls(exclude=_string_list(raw, "annotations"))
        if isinstance(raw, dict):
            unknown = set(raw) - {"include", "exclude"}
            if unknown:
                raise ConfigError(f"unknown annotations keys: {', '.join(sorted(map(str, unknown)))}")
            return cls(
                include=_string_list(raw.get("include"), "annotations.include"),
                exclude=_string_list(raw.get("exclude"), "annotations.exclude"),
            )
        raise ConfigError(f"annotations must be a list or a mapping, got {type(raw).__name__}")


@dataclass
class FilterConfig:
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    annotations: AnnotationRule = field(default_factory=AnnotationRule)
    substitutions: Dict[str, str] = field(default_factory=dict)
    strict_substitutions: bool = False
    convert_block_comments: bool = True

    def validate(self) -> None:
        if self.annotations.include and self.annotations.exclude:
            raise ConfigError("annotations.include and annotations.exclude are mutually exclusive")

    def is_pass_through(self) -> bool:
        return not (
            self.include
            or self.exclude
            or self.annotations.include
            or self.annotations.exclude
        )

    def has_annotations(self) -> bool:
        return bool(self.annotations.include or self.annotations.exclude)

    def has_substitutions(self) -> bool:
        return bool(self.substitutions)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FilterConfig":
        unknown = set(data) - KNOWN_KEYS
        if unknown:
            raise ConfigError(f"unknown configuration keys: {', '.join(sorted(map(str, unknown)))}")

        return cls(
            include=_string_list(data.get("include"), "include"),
            exclude=_string_list(data.get("exclude"), "exclude"),
            annotations=AnnotationRule.from_raw(data.get("annotations")),
            substitutions=_substitution_map(data.get("substitutions")),
            strict_substitutions=_boolean(data.get("strict_substitutions"), "strict_substitutions", False),
            convert_block_comments=_boolean(data.get("convert_block_comments"), "convert_block_comments", True),
        )


def load_config(path: Path) -> FilterConfig:
    """Read and parse a YAML filter configuration file.

    Raises:
        ConfigError: the file cannot be read, is not valid YAML, or has
            values of the wrong shape.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"reading config: {exc}") from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"parsing config YAML: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"config must be a mapping, got {type(data).__name__}")

    cfg = FilterConfig.from_dict(data)
    logger.debug(
        "Loaded config %s: %d include, %d exclude, %d substitutions",
        path, len(cfg.include), len(cfg.exclude), len(cfg.substitutions),
    )
    return cfg


def _string_list(raw: Any, key: str) -> List[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError(f"{key} must be a list, got {type(raw).__name__}")
    items = []
    for item in raw:
        if not isinstance(item, (str, int, float)) or isinstance(item, bool):
            raise ConfigError(f"{key} entries must be strings, got {item!r}")
        items.append(str(item))
    return items


def _substitution_map(raw: Any) -> Dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"substitutions must be a mapping, got {type(raw).__name__}")
    result: Dict[str, str] = {}
    for name, replacement in raw.items():
        if replacement is None:
            replacement = ""
        if isinstance(replacement, (dict, list)):
            raise ConfigError(f"substitution for {name!r} must be a string")
        result[str(name)] = str(replacement)
    return result


def _boolean(raw: Any, key: str, default: bool) -> bool:
    if raw is None:
        return default
    if not isinstance(raw, bool):
        raise ConfigError(f"{key} must be a boolean, got {raw!r}")
    return raw
