from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from ..errors import ActionHandlerError
from ..models import utc_now
from ..services import RecordStore
from .base import ActionHandler, require_params, store_result


def _parse_when(params: dict[str, Any], key: str) -> datetime | None:
    """Absolute ``key`` (ISO string or datetime) or relative ``<key>_in_days``/``_in_hours``."""
    value = params.get(key)
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ActionHandlerError(f"Invalid date for {key!r}: {value}") from exc
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    stem = key.removesuffix("_date")
    days = params.get(f"{stem}_in_days")
    hours = params.get(f"{stem}_in_hours")
    if days is None and hours is None:
        return None
    try:
        return utc_now() + timedelta(days=float(days or 0), hours=float(hours or 0))
    except (TypeError, ValueError) as exc:
        raise ActionHandlerError(f"Invalid relative date for {stem!r}") from exc


def _build_create_task(records: RecordStore) -> ActionHandler:
    async def _create_task(params: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "create_task", "title")
        task = {
            "id": uuid.uuid4().hex,
            "title": params["title"],
            "description": params.get("description"),
            "due_date": _parse_when(params, "due_date"),
            "priority": params.get("priority") or "medium",
            "assigned_to": params.get("assigned_to"),
            "status": "open",
        }

        transaction_id = params.get("transaction_id")
        if transaction_id:
            transaction = await records.require("transaction", transaction_id)
            tasks = list(transaction.get("tasks") or [])
            tasks.append(task)
            await records.update("transaction", transaction_id, {"tasks": tasks})
            result = {
                "success": True,
                "task_id": task["id"],
                "task_title": task["title"],
                "transaction_id": str(transaction_id),
                "assigned_to": task["assigned_to"],
            }
        else:
            created = await records.create("task", task)
            result = {"success": True, "task_id": created["id"], "task_title": task["title"]}

        store_result(params, context, result)
        return result

    return _create_task


def _build_create_milestone(records: RecordStore) -> ActionHandler:
    async def _create_milestone(params: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "create_milestone", "name", "transaction_id")
        transaction_id = params["transaction_id"]
        transaction = await records.require("transaction", transaction_id)
        due_date = _parse_when(params, "due_date")
        milestones = list(transaction.get("milestones") or [])
        milestones.append(
            {
                "name": params["name"],
                "due_date": due_date,
                "assigned_to": params.get("assigned_to"),
                "completed": False,
            }
        )
        await records.update("transaction", transaction_id, {"milestones": milestones})
        result = {
            "success": True,
            "milestone_name": params["name"],
            "transaction_id": str(transaction_id),
            "due_date": due_date,
        }
        store_result(params, context, result)
        return result

    return _create_milestone


def _build_schedule_follow_up(records: RecordStore) -> ActionHandler:
    async def _schedule_follow_up(params: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "schedule_follow_up", "contact_id")
        follow_up = _parse_when(params, "date")
        if follow_up is None:
            raise ActionHandlerError('schedule_follow_up requires "date" or "date_in_days" parameter')
        contact_id = params["contact_id"]
        contact = await records.require("contact", contact_id)
        await records.update(
            "contact",
            contact_id,
            {"next_follow_up": follow_up, "follow_up_notes": params.get("notes")},
        )
        result = {
            "success": True,
            "contact_id": str(contact_id),
            "contact_name": contact.get("full_name"),
            "follow_up_date": follow_up,
        }
        store_result(params, context, result)
        return result

    return _schedule_follow_up
