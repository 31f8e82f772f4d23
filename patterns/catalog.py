"""Static pattern catalog loaded from YAML."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import yaml

from verification.schemas import PatternDefinition

logger = logging.getLogger(__name__)


def load_catalog(yaml_path: str | Path) -> list[PatternDefinition]:
    """Load pattern definitions from a YAML file.

    The file holds either a top-level list or a mapping with a ``patterns``
    list. Order is preserved.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the YAML is empty, malformed or repeats an id
    """
    yaml_path = Path(yaml_path)

    if not yaml_path.exists():
        raise FileNotFoundError(f"Pattern catalog not found: {yaml_path}")

    with open(yaml_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    entries = data.get("patterns") if isinstance(data, dict) else data
    if not entries or not isinstance(entries, list):
        raise ValueError(f"Empty or invalid pattern catalog: {yaml_path}")

    patterns: list[PatternDefinition] = []
    seen: set[str] = set()
    for position, entry in enumerate(entries):
        try:
            pattern = PatternDefinition.from_dict(entry)
        except Exception as e:
            raise ValueError(f"Invalid pattern #{position} in {yaml_path}: {e}") from e
        if pattern.id in seen:
            raise ValueError(f"Duplicate pattern id {pattern.id!r} in {yaml_path}")
        seen.add(pattern.id)
        patterns.append(pattern)

    logger.debug("Loaded %d patterns from %s", len(patterns), yaml_path)
    return patterns


def get_pattern(catalog: Sequence[PatternDefinition], pattern_id: str) -> PatternDefinition:
    for pattern in catalog:
        if pattern.id == pattern_id:
            return pattern
    raise KeyError(f"Unknown pattern: {pattern_id}")
