"""Collaborators that built-in action handlers deliver through.

Production deployments plug in real mail/SMS gateways and a database-backed
record store; the in-memory implementations here keep everything they were
asked to do so flows can be exercised end to end.
"""

from __future__ import annotations

import copy
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from .errors import ActionHandlerError
from .logger import logger
from .models import utc_now


class Mailer(Protocol):
    async def send(
        self,
        to: str,
        subject: str,
        *,
        body: str | None = None,
        template: str | None = None,
        data: Mapping[str, Any] | None = None,
        sender: str | None = None,
    ) -> str: ...


class SmsGateway(Protocol):
    async def send(self, to: str, message: str) -> str: ...


class NotificationSink(Protocol):
    async def notify(self, channel: str, recipient: str, payload: Mapping[str, Any]) -> str: ...


@dataclass(slots=True)
class RecordChange:
    kind: str
    operation: Literal["created", "updated"]
    record: dict[str, Any]
    previous: dict[str, Any] | None = None


ChangeListener = Callable[[RecordChange], Awaitable[None]]


class RecordStore(Protocol):
    def subscribe(self, listener: ChangeListener) -> None: ...

    async def create(self, kind: str, data: Mapping[str, Any]) -> dict[str, Any]: ...

    async def get(self, kind: str, record_id: Any) -> dict[str, Any] | None: ...

    async def require(self, kind: str, record_id: Any) -> dict[str, Any]: ...

    async def update(self, kind: str, record_id: Any, changes: Mapping[str, Any]) -> dict[str, Any]: ...

    async def find(
        self, kind: str, predicate: Callable[[dict[str, Any]], bool] | None = None
    ) -> list[dict[str, Any]]: ...


class OutboxMailer:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(
        self,
        to: str,
        subject: str,
        *,
        body: str | None = None,
        template: str | None = None,
        data: Mapping[str, Any] | None = None,
        sender: str | None = None,
    ) -> str:
        message_id = str(uuid.uuid4())
        self.sent.append(
            {
                "message_id": message_id,
                "to": to,
                "subject": subject,
                "body": body,
                "template": template,
                "data": dict(data or {}),
                "sender": sender,
                "sent_at": utc_now(),
            }
        )
        logger.info(f"Email queued to {to}: {subject}")
        return message_id


class OutboxSmsGateway:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(self, to: str, message: str) -> str:
        message_id = str(uuid.uuid4())
        self.sent.append({"message_id": message_id, "to": to, "message": message, "sent_at": utc_now()})
        logger.info(f"SMS queued to {to}")
        return message_id


class MemoryNotificationSink:
    def __init__(self) -> None:
        self.delivered: list[dict[str, Any]] = []

    async def notify(self, channel: str, recipient: str, payload: Mapping[str, Any]) -> str:
        notification_id = str(uuid.uuid4())
        self.delivered.append(
            {
                "id": notification_id,
                "channel": channel,
                "recipient": recipient,
                **payload,
                "created_at": utc_now(),
            }
        )
        logger.info(f"{channel} notification for {recipient}")
        return notification_id


class MemoryRecordStore:
    """Records grouped by kind (contact, property, transaction, task, ...)."""

    def __init__(self, seed: Mapping[str, Iterable[Mapping[str, Any]]] | None = None) -> None:
        self._records: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self._listeners: list[ChangeListener] = []
        for kind, records in (seed or {}).items():
            for record in records:
                stored = copy.deepcopy(dict(record))
                stored["id"] = str(stored.get("id") or uuid.uuid4().hex)
                self._records[kind][stored["id"]] = stored

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    async def create(self, kind: str, data: Mapping[str, Any]) -> dict[str, Any]:
        record = copy.deepcopy(dict(data))
        record["id"] = str(record.get("id") or uuid.uuid4().hex)
        record.setdefault("created_at", utc_now())
        self._records[kind][record["id"]] = record
        await self._publish(RecordChange(kind, "created", copy.deepcopy(record)))
        return copy.deepcopy(record)

    async def get(self, kind: str, record_id: Any) -> dict[str, Any] | None:
        record = self._records[kind].get(str(record_id))
        return copy.deepcopy(record) if record is not None else None

    async def require(self, kind: str, record_id: Any) -> dict[str, Any]:
        record = await self.get(kind, record_id)
        if record is None:
            raise ActionHandlerError(f"{kind.capitalize()} not found: {record_id}")
        return record

    async def update(self, kind: str, record_id: Any, changes: Mapping[str, Any]) -> dict[str, Any]:
        current = self._records[kind].get(str(record_id))
        if current is None:
            raise ActionHandlerError(f"{kind.capitalize()} not found: {record_id}")
        previous = copy.deepcopy(current)
        current.update(copy.deepcopy(dict(changes)))
        current["updated_at"] = utc_now()
        await self._publish(RecordChange(kind, "updated", copy.deepcopy(current), previous))
        return copy.deepcopy(current)

    async def find(
        self, kind: str, predicate: Callable[[dict[str, Any]], bool] | None = None
    ) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(record)
            for record in self._records[kind].values()
            if predicate is None or predicate(record)
        ]

    async def _publish(self, change: RecordChange) -> None:
        for listener in list(self._listeners):
            await listener(change)


@dataclass(slots=True)
class ActionServices:
    mailer: Mailer = field(default_factory=OutboxMailer)
    sms: SmsGateway = field(default_factory=OutboxSmsGateway)
    notifications: NotificationSink = field(default_factory=MemoryNotificationSink)
    records: RecordStore = field(default_factory=MemoryRecordStore)
