from .base import ActionHandler, ActionRegistry, ActionSpec, require_params, store_result
from .builtin import builtin_action_specs, register_builtin_actions

__all__ = [
    "ActionHandler",
    "ActionRegistry",
    "ActionSpec",
    "builtin_action_specs",
    "register_builtin_actions",
    "require_params",
    "store_result",
]
