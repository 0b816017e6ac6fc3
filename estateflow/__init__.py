from .engine import FlowEngine
from .errors import (
    ActionHandlerError,
    DuplicateFlowIdError,
    EngineNotRunningError,
    FlowEngineError,
    FlowNotFoundError,
    FlowValidationError,
    UnknownActionTypeError,
)
from .models import ExecutionRecord, FlowDefinition

__all__ = [
    "ActionHandlerError",
    "DuplicateFlowIdError",
    "EngineNotRunningError",
    "ExecutionRecord",
    "FlowDefinition",
    "FlowEngine",
    "FlowEngineError",
    "FlowNotFoundError",
    "FlowValidationError",
    "UnknownActionTypeError",
]
