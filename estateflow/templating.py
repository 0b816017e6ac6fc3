"""Resolution of ``{{path.to.value}}`` placeholders against a flow context.

A string that is exactly one placeholder resolves to the typed value it
points at; placeholders embedded in other text are stringified. Anything
that cannot be resolved is left in place verbatim.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any

PLACEHOLDER = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
_BRACKET_INDEX = re.compile(r"\[(\d+)\]")


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def split_path(path: str) -> list[str]:
    normalized = _BRACKET_INDEX.sub(r".\1", path.strip())
    return [segment.strip() for segment in normalized.split(".")]


def lookup(context: Any, path: str) -> Any:
    """Walk ``path`` through nested mappings and sequences, MISSING if absent."""
    current = context
    for segment in split_path(path):
        if isinstance(current, Mapping):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            if not segment.isdigit() or int(segment) >= len(current):
                return MISSING
            current = current[int(segment)]
        else:
            return MISSING
    return current


def has_placeholders(value: Any) -> bool:
    return isinstance(value, str) and PLACEHOLDER.search(value) is not None


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def resolve(value: Any, context: Mapping[str, Any]) -> Any:
    if isinstance(value, str):
        return _resolve_string(value, context)
    if isinstance(value, Mapping):
        return {key: resolve(item, context) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve(item, context) for item in value]
    return value


def _resolve_string(text: str, context: Mapping[str, Any]) -> Any:
    whole = PLACEHOLDER.fullmatch(text)
    if whole is not None:
        found = lookup(context, whole.group(1))
        return text if found is MISSING else found

    def _substitute(match: re.Match[str]) -> str:
        found = lookup(context, match.group(1))
        return match.group(0) if found is MISSING else stringify(found)

    return PLACEHOLDER.sub(_substitute, text)
