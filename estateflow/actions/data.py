from __future__ import annotations

from typing import Any

from ..errors import ActionHandlerError
from ..logger import logger
from ..models import utc_now
from ..services import RecordStore
from .base import ActionHandler, require_params, store_result


def _build_add_contact_tag(records: RecordStore) -> ActionHandler:
    async def _add_contact_tag(params: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "add_contact_tag", "contact_id", "tag")
        contact = await records.require("contact", params["contact_id"])
        tags = list(contact.get("tags") or [])
        tag = str(params["tag"])
        if tag not in tags:
            tags.append(tag)
            await records.update("contact", contact["id"], {"tags": tags})
        result = {"success": True, "contact_id": contact["id"], "contact_name": contact.get("full_name"), "tag": tag}
        store_result(params, context, result)
        return result

    return _add_contact_tag


def _build_update_contact_status(records: RecordStore) -> ActionHandler:
    async def _update_contact_status(params: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "update_contact_status", "contact_id", "status")
        contact = await records.require("contact", params["contact_id"])
        changes: dict[str, Any] = {"status": params["status"]}
        if isinstance(contact.get("buyer_profile"), dict):
            changes["buyer_profile"] = {**contact["buyer_profile"], "status": params["status"]}
        await records.update("contact", contact["id"], changes)
        result = {
            "success": True,
            "contact_id": contact["id"],
            "contact_name": contact.get("full_name"),
            "new_status": params["status"],
        }
        store_result(params, context, result)
        return result

    return _update_contact_status


def _build_link_contact_to_property(records: RecordStore) -> ActionHandler:
    async def _link_contact_to_property(params: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "link_contact_to_property", "contact_id", "property_id", "relationship")
        contact = await records.require("contact", params["contact_id"])
        prop = await records.require("property", params["property_id"])
        relationship = params["relationship"]
        notes = params.get("notes")

        properties = list(contact.get("properties") or [])
        properties.append({"property_id": prop["id"], "relationship": relationship, "notes": notes})
        await records.update("contact", contact["id"], {"properties": properties})

        contacts = list(prop.get("contacts") or [])
        contacts.append({"contact_id": contact["id"], "relationship": relationship, "notes": notes})
        await records.update("property", prop["id"], {"contacts": contacts})

        result = {
            "success": True,
            "contact_id": contact["id"],
            "contact_name": contact.get("full_name"),
            "property_id": prop["id"],
            "property_title": prop.get("title"),
            "relationship": relationship,
        }
        store_result(params, context, result)
        return result

    return _link_contact_to_property


def _build_add_contact_interaction(records: RecordStore) -> ActionHandler:
    async def _add_contact_interaction(params: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "add_contact_interaction", "contact_id", "type")
        contact = await records.require("contact", params["contact_id"])
        interactions = list(contact.get("interactions") or [])
        interactions.append(
            {
                "type": params["type"],
                "subject": params.get("subject"),
                "notes": params.get("notes"),
                "next_action": params.get("next_action"),
                "next_action_date": params.get("next_action_date"),
                "date": utc_now(),
            }
        )
        await records.update("contact", contact["id"], {"interactions": interactions})
        result = {
            "success": True,
            "contact_id": contact["id"],
            "contact_name": contact.get("full_name"),
            "interaction_type": params["type"],
        }
        store_result(params, context, result)
        return result

    return _add_contact_interaction


def _build_move_transaction_stage(records: RecordStore) -> ActionHandler:
    async def _move_transaction_stage(params: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "move_transaction_stage", "transaction_id", "stage")
        transaction = await records.require("transaction", params["transaction_id"])
        history = list(transaction.get("stage_history") or [])
        history.append(
            {"from": transaction.get("stage"), "to": params["stage"], "notes": params.get("notes"), "at": utc_now()}
        )
        await records.update(
            "transaction", transaction["id"], {"stage": params["stage"], "stage_history": history}
        )
        result = {
            "success": True,
            "transaction_id": transaction["id"],
            "new_stage": params["stage"],
            "probability": transaction.get("probability"),
        }
        store_result(params, context, result)
        return result

    return _move_transaction_stage


def _build_create_saved_search(records: RecordStore) -> ActionHandler:
    async def _create_saved_search(params: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "create_saved_search", "contact_id", "search_name", "filters")
        contact = await records.require("contact", params["contact_id"])
        alert_frequency = params.get("alert_frequency") or "daily"
        profile = dict(contact.get("buyer_profile") or {})
        searches = list(profile.get("saved_searches") or [])
        searches.append(
            {
                "name": params["search_name"],
                "filters": params["filters"],
                "alert_frequency": alert_frequency,
                "created_at": utc_now(),
            }
        )
        profile["saved_searches"] = searches
        await records.update("contact", contact["id"], {"buyer_profile": profile})
        result = {
            "success": True,
            "contact_id": contact["id"],
            "contact_name": contact.get("full_name"),
            "search_name": params["search_name"],
            "alert_frequency": alert_frequency,
        }
        store_result(params, context, result)
        return result

    return _create_saved_search


def _build_update_record(records: RecordStore) -> ActionHandler:
    async def _update_record(params: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "update_record", "model", "id")
        changes = params.get("changes")
        if changes is None:
            require_params(params, "update_record", "model", "id", "field")
            changes = {params["field"]: params.get("value")}
        if not isinstance(changes, dict) or not changes:
            raise ActionHandlerError("update_record.changes must be a non-empty dictionary")
        updated = await records.update(str(params["model"]), params["id"], changes)
        logger.info(f"Updated {params['model']} {params['id']}: {', '.join(changes)}")
        result = {"success": True, "model": params["model"], "id": updated["id"], "changes": changes}
        store_result(params, context, result)
        return result

    return _update_record


def _build_increment_field(records: RecordStore) -> ActionHandler:
    async def _increment_field(params: dict[str, Any], context: dict[str, Any]) -> dict[str, Any]:
        require_params(params, "increment_field", "model", "id", "field")
        model, field = str(params["model"]), str(params["field"])
        record = await records.require(model, params["id"])
        current = record.get(field) or 0
        step = params.get("by", 1)
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            raise ActionHandlerError(f"{model}.{field} is not numeric")
        if isinstance(step, bool) or not isinstance(step, (int, float)):
            raise ActionHandlerError("increment_field.by must be a number")
        value = current + step
        await records.update(model, record["id"], {field: value})
        result = {"success": True, "model": model, "id": record["id"], "field": field, "value": value}
        store_result(params, context, result)
        return result

    return _increment_field
