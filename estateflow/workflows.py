"""Persisted workflow documents and their conversion into flow definitions.

A workflow document is the user-authored automation shape: a single typed
trigger, optional filters and a list of typed action blocks. Converting it
yields a FlowDefinition that runs on the same engine as every other flow.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field

from .errors import FlowValidationError
from .models import Condition, FlowDefinition, utc_now
from .registry import parse_flow

WorkflowStatus = Literal["active", "inactive", "draft"]
WorkflowActionType = Literal[
    "send_email",
    "send_sms",
    "create_task",
    "update_record",
    "update_status",
    "notify_user",
    "call_webhook",
    "generate_document",
]


class ScheduleSpec(BaseModel):
    frequency: Literal["daily", "weekly", "monthly", "yearly"] = "daily"
    time: str = "00:00"
    day_of_week: int = Field(default=0, ge=0, le=6, validation_alias=AliasChoices("day_of_week", "dayOfWeek"))
    day_of_month: int = Field(default=1, ge=1, le=31, validation_alias=AliasChoices("day_of_month", "dayOfMonth"))

    def to_cron(self) -> str:
        try:
            hour, minute = (int(part) for part in self.time.split(":", 1))
        except ValueError as exc:
            raise FlowValidationError(f"Invalid schedule time: {self.time!r}") from exc
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise FlowValidationError(f"Invalid schedule time: {self.time!r}")
        if self.frequency == "daily":
            return f"{minute} {hour} * * *"
        if self.frequency == "weekly":
            return f"{minute} {hour} * * {self.day_of_week}"
        if self.frequency == "monthly":
            return f"{minute} {hour} {self.day_of_month} * *"
        return f"{minute} {hour} {self.day_of_month} 1 *"


class StatusChangeSpec(BaseModel):
    model: str = Field(min_length=1)
    field: str = "status"
    from_value: str | None = Field(default=None, validation_alias=AliasChoices("from", "from_value"))
    to_value: str | None = Field(default=None, validation_alias=AliasChoices("to", "to_value"))


class DateBasedSpec(BaseModel):
    field: str
    days_before_after: int = Field(default=0, validation_alias=AliasChoices("days_before_after", "daysBeforeAfter"))
    direction: Literal["before", "after"] = "before"


class WorkflowTrigger(BaseModel):
    type: Literal["event", "schedule", "status_change", "date_based", "manual"]
    event: str | None = None
    schedule: ScheduleSpec | None = None
    status_change: StatusChangeSpec | None = Field(
        default=None, validation_alias=AliasChoices("status_change", "statusChange")
    )
    date_based: DateBasedSpec | None = Field(default=None, validation_alias=AliasChoices("date_based", "dateBased"))


class EmailBlock(BaseModel):
    to: str
    subject: str
    template: str | None = None
    body: str | None = None


class SmsBlock(BaseModel):
    to: str
    message: str


class TaskBlock(BaseModel):
    title: str
    description: str | None = None
    assign_to: str | None = Field(default=None, validation_alias=AliasChoices("assign_to", "assignTo"))
    due_date: datetime | None = Field(default=None, validation_alias=AliasChoices("due_date", "dueDate"))
    priority: Literal["low", "medium", "high"] = "medium"


class UpdateBlock(BaseModel):
    model: str
    field: str | None = None
    value: Any = None
    record_id: str = Field(default="{{record_id}}", validation_alias=AliasChoices("record_id", "recordId"))


class DocumentBlock(BaseModel):
    template: str
    output_name: str | None = Field(default=None, validation_alias=AliasChoices("output_name", "outputName"))


class NotificationBlock(BaseModel):
    recipient: str
    message: str
    type: Literal["info", "warning", "success", "error"] = "info"


class WebhookBlock(BaseModel):
    url: str
    method: Literal["GET", "POST", "PUT", "DELETE"] = "POST"
    headers: dict[str, Any] = Field(default_factory=dict)
    body: Any = None


class WorkflowAction(BaseModel):
    type: WorkflowActionType
    email: EmailBlock | None = None
    sms: SmsBlock | None = None
    task: TaskBlock | None = None
    update: UpdateBlock | None = None
    document: DocumentBlock | None = None
    notification: NotificationBlock | None = None
    webhook: WebhookBlock | None = None
    delay: float = Field(default=0, ge=0)
    order: int = 0


class WorkflowDocument(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    owner: str | None = None
    status: WorkflowStatus = "draft"
    trigger: WorkflowTrigger
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[WorkflowAction] = Field(min_length=1)
    is_template: bool = Field(default=False, validation_alias=AliasChoices("is_template", "isTemplate"))
    template_category: str | None = Field(
        default=None, validation_alias=AliasChoices("template_category", "templateCategory")
    )
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def flow_id(self) -> str:
        return f"workflow-{self.id}"

    def to_flow_definition(self) -> FlowDefinition:
        trigger, extra_conditions = _convert_trigger(self)
        actions = [_convert_action(action) for action in sorted(self.actions, key=lambda a: a.order)]
        return parse_flow(
            {
                "id": self.flow_id,
                "name": self.name,
                "description": self.description,
                "category": self.template_category or "workflow",
                "trigger": trigger,
                "conditions": [*extra_conditions, *(c.model_dump() for c in self.conditions)],
                "actions": actions,
                "enabled": self.status == "active",
            }
        )


def _convert_trigger(workflow: WorkflowDocument) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    trigger = workflow.trigger
    if trigger.type == "event":
        if not trigger.event:
            raise FlowValidationError("event trigger requires an event name")
        return {"type": "event", "event": trigger.event}, []
    if trigger.type == "schedule":
        spec = trigger.schedule or ScheduleSpec()
        return {"type": "scheduled", "schedule": spec.to_cron()}, []
    if trigger.type == "manual":
        return {"type": "event", "event": f"workflow.{workflow.id}.manual"}, []
    if trigger.type == "status_change":
        change = trigger.status_change
        if change is None:
            raise FlowValidationError("status_change trigger requires a status_change block")
        conditions = []
        if change.from_value is not None:
            conditions.append({"field": "old_value", "operator": "equals", "value": change.from_value})
        if change.to_value is not None:
            conditions.append({"field": "new_value", "operator": "equals", "value": change.to_value})
        return {"type": "event", "event": f"{change.model.lower()}.{change.field}.changed"}, conditions
    raise FlowValidationError(f"Unsupported workflow trigger type: {trigger.type}")


def _drop_none(params: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None}


def _block(action: WorkflowAction, name: str) -> Any:
    block = getattr(action, name)
    if block is None:
        raise FlowValidationError(f"{action.type} action requires a {name!r} block")
    return block


def _convert_action(action: WorkflowAction) -> dict[str, Any]:
    if action.type == "send_email":
        email = _block(action, "email")
        converted = ("send_email", _drop_none(email.model_dump()))
    elif action.type == "send_sms":
        sms = _block(action, "sms")
        converted = ("send_sms", sms.model_dump())
    elif action.type == "create_task":
        task = _block(action, "task")
        converted = (
            "create_task",
            _drop_none(
                {
                    "title": task.title,
                    "description": task.description,
                    "assigned_to": task.assign_to,
                    "due_date": task.due_date.isoformat() if task.due_date else None,
                    "priority": task.priority,
                }
            ),
        )
    elif action.type in ("update_record", "update_status"):
        update = _block(action, "update")
        field = "status" if action.type == "update_status" else update.field
        if not field:
            raise FlowValidationError("update_record action requires a field")
        converted = (
            "update_record",
            {"model": update.model.lower(), "id": update.record_id, "field": field, "value": update.value},
        )
    elif action.type == "notify_user":
        notification = _block(action, "notification")
        converted = (
            "send_in_app_notification",
            {"user_id": notification.recipient, "message": notification.message, "type": notification.type},
        )
    elif action.type == "call_webhook":
        webhook = _block(action, "webhook")
        converted = ("call_webhook", _drop_none(webhook.model_dump()))
    else:
        raise FlowValidationError(f"Unsupported workflow action type: {action.type}")

    action_type, params = converted
    return {"type": action_type, "params": params, "delay_minutes": action.delay}
