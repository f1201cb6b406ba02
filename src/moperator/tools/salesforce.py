#

from typing import Annotated, Any

from moperator.context import OperatorServerContext
from moperator.tools.registry import register
from moperator.tools.utils import JSONType


_COMMON_OBJECTS = (
    "Contact",
    "Lead",
    "Account",
    "Campaign",
    "CampaignMember",
    "Opportunity",
    "Task",
    "Event",
)
_DESCRIBE_FIELD_LIMIT = 50
_BULK_ERROR_PREVIEW = 10


@register
async def query_salesforce(
    ctx: OperatorServerContext,
    soql: Annotated[str, "The SOQL query to execute"],
) -> JSONType:
    """
    Execute a SOQL query against Salesforce (Contacts, Leads, Accounts, Campaigns, CampaignMembers, ...).
    Example: SELECT Id, FirstName, LastName, Email FROM Contact WHERE AccountId = 'xxx'
    """
    records = await ctx.salesforce.query(soql)
    return {"success": True, "count": len(records), "records": records}


@register
async def describe_salesforce_object(
    ctx: OperatorServerContext,
    object_name: Annotated[str, "The Salesforce object API name"],
) -> JSONType:
    """
    Returns the fields of a Salesforce object. Use before writing queries or updates.
    """
    desc = await ctx.salesforce.describe_object(object_name)
    fields = [
        {
            "name": field.get("name"),
            "label": field.get("label"),
            "type": field.get("type"),
            "required": not field.get("nillable", True),
        }
        for field in desc.get("fields", [])
    ]
    return {
        "success": True,
        "object_name": desc.get("name", object_name),
        "label": desc.get("label"),
        "fields": fields[:_DESCRIBE_FIELD_LIMIT],
        "total_fields": len(fields),
    }


@register
async def list_salesforce_objects(ctx: OperatorServerContext) -> JSONType:
    """
    Lists commonly used Salesforce objects.
    """
    payload = await ctx.salesforce.describe_global()
    objects = [
        {"name": obj.get("name"), "label": obj.get("label")}
        for obj in payload.get("sobjects", [])
        if obj.get("name") in _COMMON_OBJECTS
    ]
    return {"success": True, "objects": objects}


@register(write=True)
async def add_contacts_to_campaign(
    ctx: OperatorServerContext,
    campaign_id: Annotated[str, "The Salesforce Campaign ID"],
    contact_ids: Annotated[list[str], "Contact IDs to add"],
    status: Annotated[str | None, "Campaign member status (default: 'Sent')"] = None,
) -> JSONType:
    """
    Add one or more contacts to a Salesforce campaign.
    """
    result = await ctx.salesforce.add_to_campaign(campaign_id, contact_ids, status)
    return {"success": True, "added": result["success"], "failed": result["failed"]}


@register(write=True)
async def update_salesforce_record(
    ctx: OperatorServerContext,
    object_name: Annotated[str, "The Salesforce object API name"],
    record_id: Annotated[str, "The record ID to update"],
    data: Annotated[dict[str, Any], "Field names and new values"],
) -> JSONType:
    """
    Update a record in Salesforce.
    """
    await ctx.salesforce.update_record(object_name, record_id, data)
    return {"success": True, "message": f"Updated {object_name} record {record_id}"}


@register(write=True)
async def create_salesforce_record(
    ctx: OperatorServerContext,
    object_name: Annotated[str, "The Salesforce object API name"],
    data: Annotated[dict[str, Any], "Field names and values for the new record"],
) -> JSONType:
    """
    Create a new record in Salesforce.
    """
    record_id = await ctx.salesforce.create_record(object_name, data)
    return {
        "success": True,
        "id": record_id,
        "message": f"Created {object_name} record {record_id}",
    }


@register(write=True)
async def delete_salesforce_record(
    ctx: OperatorServerContext,
    object_name: Annotated[str, "The Salesforce object API name"],
    record_id: Annotated[str, "The record ID to delete"],
) -> JSONType:
    """
    Delete a record from Salesforce.
    """
    await ctx.salesforce.delete_record(object_name, record_id)
    return {"success": True, "message": f"Deleted {object_name} record {record_id}"}


@register(write=True)
async def bulk_update_records(
    ctx: OperatorServerContext,
    object_name: Annotated[str, "The Salesforce object API name"],
    records: Annotated[
        list[dict[str, Any]],
        "Records to update, each with an Id field plus the fields to change",
    ],
) -> JSONType:
    """
    Update multiple Salesforce records in one call. Each record needs an Id and the fields to update.
    """
    result = await ctx.salesforce.bulk_update(object_name, records)
    return {
        "success": True,
        "updated": result["success"],
        "failed": result["failed"],
        "errors": result["errors"][:_BULK_ERROR_PREVIEW],
        "message": f"Updated {result['success']} records, {result['failed']} failed",
    }
