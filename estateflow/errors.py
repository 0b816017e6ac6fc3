from __future__ import annotations


class FlowEngineError(Exception):
    """Base class for flow engine errors."""


class FlowValidationError(FlowEngineError, ValueError):
    pass


class DuplicateFlowIdError(FlowEngineError):
    def __init__(self, flow_id: str) -> None:
        super().__init__(f"Flow id already registered: {flow_id}")
        self.flow_id = flow_id


class FlowNotFoundError(FlowEngineError, LookupError):
    def __init__(self, flow_id: str) -> None:
        super().__init__(f"Flow not found: {flow_id}")
        self.flow_id = flow_id


class UnknownActionTypeError(FlowEngineError, LookupError):
    def __init__(self, action_type: str) -> None:
        super().__init__(f"Unknown action type: {action_type}")
        self.action_type = action_type


class ActionHandlerError(FlowEngineError):
    """Raised by action handlers for bad params or missing records."""


class EngineNotRunningError(FlowEngineError, RuntimeError):
    def __init__(self) -> None:
        super().__init__("Flow engine is not running")
