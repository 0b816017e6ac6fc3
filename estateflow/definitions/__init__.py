"""Flow definitions shipped with the package, stored as YAML data."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml

from ..errors import FlowValidationError
from ..logger import logger
from ..models import FlowDefinition
from ..registry import parse_flow

BUILTIN_DIR = Path(__file__).resolve().parent


def builtin_definition_files() -> list[Path]:
    return sorted(BUILTIN_DIR.glob("*.yaml"))


def _read_entries(path: Path) -> tuple[str | None, list[Any]]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if isinstance(raw, list):
        return None, raw
    if isinstance(raw, dict) and isinstance(raw.get("flows"), list):
        category = raw.get("category")
        return (category if isinstance(category, str) else None), raw["flows"]
    raise FlowValidationError(f"{path.name}: expected a list of flows or a mapping with 'flows'")


def load_flow_definitions(paths: Iterable[str | Path]) -> list[FlowDefinition]:
    """Parse every flow in the given YAML files; broken entries are skipped."""
    flows: list[FlowDefinition] = []
    for path in map(Path, paths):
        try:
            category, entries = _read_entries(path)
        except (OSError, yaml.YAMLError, FlowValidationError) as exc:
            logger.error(f"Cannot load flow definitions from {path}: {exc}")
            continue
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                logger.error(f"{path.name}[{index}]: flow definition must be a mapping")
                continue
            if category:
                entry.setdefault("category", category)
            try:
                flows.append(parse_flow(entry))
            except FlowValidationError as exc:
                logger.error(f"{path.name}[{index}] ({entry.get('id', '?')}): {exc}")
    return flows


def load_builtin_flows() -> list[FlowDefinition]:
    return load_flow_definitions(builtin_definition_files())
