from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any


Describer = Callable[[Mapping[str, Any]], str]


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def _count(value: Any) -> int:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return len(value)
    return 0


def _field_suffix(data: Any) -> str:
    if not isinstance(data, Mapping) or not data:
        return ""
    names = ", ".join(f"`{name}`" for name in sorted(str(key) for key in data))
    return f" with fields {names}"


def _describe_update(args: Mapping[str, Any]) -> str:
    return (
        f"Update {args.get('object_name')} record `{args.get('record_id')}`"
        f"{_field_suffix(args.get('data'))}"
    )


def _describe_create(args: Mapping[str, Any]) -> str:
    return (
        f"Create a new {args.get('object_name')} record"
        f"{_field_suffix(args.get('data'))}"
    )


def _describe_delete(args: Mapping[str, Any]) -> str:
    return f"Delete {args.get('object_name')} record `{args.get('record_id')}`"


def _describe_bulk_update(args: Mapping[str, Any]) -> str:
    count = _count(args.get("records"))
    return f"Bulk update {_plural(count, str(args.get('object_name')) + ' record')}"


def _describe_add_to_campaign(args: Mapping[str, Any]) -> str:
    count = _count(args.get("contact_ids"))
    return (
        f"Add {_plural(count, 'contact')} to campaign `{args.get('campaign_id')}`"
    )


_DESCRIBERS: dict[str, Describer] = {
    "update_salesforce_record": _describe_update,
    "create_salesforce_record": _describe_create,
    "delete_salesforce_record": _describe_delete,
    "bulk_update_records": _describe_bulk_update,
    "add_contacts_to_campaign": _describe_add_to_campaign,
}


def describe_operation(tool_name: str, args: Mapping[str, Any]) -> str:
    """Return a one-line, human readable summary of a write operation.

    The same ``(tool_name, args)`` always yields the same text. The summary is
    shown to reviewers and is also used to match a prompt back to its stored
    approval, so it names the target object and record id (or the number of
    records for bulk operations).
    """
    describer = _DESCRIBERS.get(tool_name)
    if describer is None:
        return f"Execute `{tool_name}`"
    return describer(args)


def sentence_case(description: str) -> str:
    """Lower-case the leading verb so a description reads inside a sentence."""
    if not description:
        return description
    return description[0].lower() + description[1:]


__all__ = ["describe_operation", "sentence_case"]
