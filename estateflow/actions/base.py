from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from ..errors import ActionHandlerError, UnknownActionTypeError
from ..logger import logger
from ..templating import has_placeholders

ActionHandler = Callable[[dict[str, Any], dict[str, Any]], Awaitable[Mapping[str, Any] | None]]


@dataclass(slots=True)
class ActionSpec:
    type_name: str
    description: str
    handler: ActionHandler

    async def execute(self, params: dict[str, Any], context: dict[str, Any]) -> Any:
        result = self.handler(params, context)
        if inspect.isawaitable(result):
            result = await result
        return result


class ActionRegistry:
    def __init__(self) -> None:
        self._actions: dict[str, ActionSpec] = {}

    def register(self, spec: ActionSpec) -> None:
        if not callable(spec.handler):
            raise TypeError(f"Action handler for {spec.type_name!r} must be callable")
        if spec.type_name in self._actions:
            logger.info(f"Replacing action handler: {spec.type_name}")
        self._actions[spec.type_name] = spec

    def register_handler(self, type_name: str, handler: ActionHandler, description: str = "") -> None:
        self.register(ActionSpec(type_name=type_name, description=description, handler=handler))

    def get(self, type_name: str) -> ActionSpec:
        if type_name not in self._actions:
            raise UnknownActionTypeError(type_name)
        return self._actions[type_name]

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._actions

    def __len__(self) -> int:
        return len(self._actions)

    def list_types(self) -> list[str]:
        return sorted(self._actions)

    def list_specs(self) -> list[dict[str, str]]:
        return [
            {"type": self._actions[key].type_name, "description": self._actions[key].description}
            for key in sorted(self._actions)
        ]


def require_params(params: Mapping[str, Any], action: str, *names: str) -> None:
    """Raise ActionHandlerError unless every name has a resolved, non-empty value."""
    missing = [name for name in names if _is_blank(params.get(name))]
    if missing:
        quoted = ", ".join(f'"{name}"' for name in names)
        raise ActionHandlerError(f"{action} requires {quoted} parameters (missing: {', '.join(missing)})")


def store_result(params: Mapping[str, Any], context: dict[str, Any], result: Any) -> None:
    """Expose an action result to later actions through the shared context."""
    key = params.get("store_as")
    if isinstance(key, str) and key:
        context[key] = result


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        # a placeholder that survived resolution means the source field was absent
        return not value.strip() or has_placeholders(value)
    return False
