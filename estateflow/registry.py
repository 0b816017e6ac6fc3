from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from .errors import DuplicateFlowIdError, FlowNotFoundError, FlowValidationError
from .logger import logger
from .models import FlowDefinition


def parse_flow(definition: FlowDefinition | Mapping[str, Any]) -> FlowDefinition:
    if isinstance(definition, FlowDefinition):
        data = definition.model_dump()
    else:
        data = dict(definition)
    data.pop("stats", None)
    data.pop("created_at", None)
    try:
        return FlowDefinition.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "flow"
        raise FlowValidationError(f"Invalid flow definition: {location}: {first['msg']}") from exc


class FlowRegistry:
    """Insertion-ordered store of flow definitions keyed by id."""

    def __init__(self) -> None:
        self._flows: dict[str, FlowDefinition] = {}

    def register(self, definition: FlowDefinition | Mapping[str, Any]) -> FlowDefinition:
        flow = parse_flow(definition)
        if flow.id in self._flows:
            raise DuplicateFlowIdError(flow.id)
        self._flows[flow.id] = flow
        logger.info(f"Flow registered: {flow.name} ({flow.id})")
        return flow

    def unregister(self, flow_id: str) -> None:
        flow = self.require(flow_id)
        del self._flows[flow_id]
        logger.info(f"Flow unregistered: {flow.name} ({flow_id})")

    def enable(self, flow_id: str) -> FlowDefinition:
        flow = self.require(flow_id)
        if not flow.enabled:
            flow.enabled = True
            logger.info(f"Flow enabled: {flow.name} ({flow_id})")
        return flow

    def disable(self, flow_id: str) -> FlowDefinition:
        flow = self.require(flow_id)
        if flow.enabled:
            flow.enabled = False
            logger.info(f"Flow disabled: {flow.name} ({flow_id})")
        return flow

    def get(self, flow_id: str) -> FlowDefinition | None:
        return self._flows.get(flow_id)

    def require(self, flow_id: str) -> FlowDefinition:
        flow = self._flows.get(flow_id)
        if flow is None:
            raise FlowNotFoundError(flow_id)
        return flow

    def list_flows(self) -> list[FlowDefinition]:
        return list(self._flows.values())

    def matching(self, event_name: str) -> list[FlowDefinition]:
        return [
            flow
            for flow in self._flows.values()
            if flow.enabled and not flow.trigger.is_scheduled and flow.trigger.event == event_name
        ]

    def scheduled(self) -> list[FlowDefinition]:
        return [flow for flow in self._flows.values() if flow.enabled and flow.trigger.is_scheduled]

    def __len__(self) -> int:
        return len(self._flows)

    def __contains__(self, flow_id: object) -> bool:
        return flow_id in self._flows
