from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from croniter import croniter
from pydantic import AliasChoices, BaseModel, Field, model_validator

SCHEDULE_ALIASES: dict[str, str] = {
    "hourly": "0 * * * *",
    "daily": "0 0 * * *",
    "weekly": "0 0 * * 0",
    "monthly": "0 0 1 * *",
    "yearly": "0 0 1 1 *",
}

ConditionOperator = Literal[
    "equals",
    "not_equals",
    "greater_than",
    "less_than",
    "contains",
    "not_contains",
    "exists",
    "not_exists",
    "in",
    "not_in",
]

ExecutionStatus = Literal["success", "partial", "failed"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_schedule(schedule: str) -> str:
    """Expand a schedule alias and check the cron expression is valid."""
    expression = SCHEDULE_ALIASES.get(schedule.strip().lower(), schedule.strip())
    if not croniter.is_valid(expression):
        raise ValueError(f"Invalid schedule: {schedule!r}")
    return expression


class Trigger(BaseModel):
    type: Literal["event", "scheduled"] = "event"
    event: str | None = None
    schedule: str | None = None

    @model_validator(mode="after")
    def _check_mode(self) -> Trigger:
        if self.type == "scheduled":
            if self.event:
                raise ValueError("trigger must specify either an event or a schedule, not both")
            if not self.schedule:
                raise ValueError("scheduled trigger requires a schedule")
            normalize_schedule(self.schedule)
        else:
            if not self.event:
                raise ValueError("trigger must specify an event or type 'scheduled'")
            if self.schedule:
                raise ValueError("event trigger cannot carry a schedule")
        return self

    @property
    def is_scheduled(self) -> bool:
        return self.type == "scheduled"

    @property
    def cron(self) -> str | None:
        return normalize_schedule(self.schedule) if self.schedule else None


class Condition(BaseModel):
    field: str = Field(min_length=1)
    operator: ConditionOperator
    value: Any = None


class ActionDefinition(BaseModel):
    type: str = Field(min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)
    delay_minutes: float = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("delay_minutes", "delay"),
    )
    timeout_seconds: float | None = Field(default=None, gt=0)


class ActionResult(BaseModel):
    type: str
    status: Literal["success", "failed"]
    started_at: datetime
    duration_ms: float = 0.0
    result: Any = None
    error: str | None = None


class ExecutionRecord(BaseModel):
    id: str
    flow_id: str
    flow_name: str
    triggered_at: datetime
    triggered_by: str
    status: ExecutionStatus
    actions_completed: int = 0
    actions_failed: int = 0
    error: str | None = None
    duration_ms: float = 0.0
    results: list[ActionResult] = Field(default_factory=list)


class FlowStats(BaseModel):
    total_executions: int = 0
    successful_executions: int = 0
    partial_executions: int = 0
    failed_executions: int = 0
    last_executed: datetime | None = None
    average_duration_ms: float = 0.0

    def record(self, execution: ExecutionRecord) -> None:
        self.total_executions += 1
        if execution.status == "success":
            self.successful_executions += 1
        elif execution.status == "partial":
            self.partial_executions += 1
        else:
            self.failed_executions += 1
        self.last_executed = execution.triggered_at
        # incremental mean over all executions
        self.average_duration_ms += (
            execution.duration_ms - self.average_duration_ms
        ) / self.total_executions


class FlowDefinition(BaseModel):
    id: str = Field(min_length=1, frozen=True)
    name: str = ""
    description: str = ""
    category: str | None = None
    trigger: Trigger
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[ActionDefinition] = Field(min_length=1)
    enabled: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    stats: FlowStats = Field(default_factory=FlowStats)

    @model_validator(mode="after")
    def _default_name(self) -> FlowDefinition:
        if not self.name:
            self.name = self.id
        return self


class EngineStats(BaseModel):
    total_flows: int
    enabled_flows: int
    disabled_flows: int
    scheduled_flows: int
    total_executions: int
    registered_actions: int
    history_size: int
    is_running: bool


class TriggerRequest(BaseModel):
    event_name: str | None = Field(
        default=None, validation_alias=AliasChoices("event_name", "eventName")
    )
    event_data: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("event_data", "eventData")
    )
