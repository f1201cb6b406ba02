from __future__ import annotations

from moperator.approvals import describe_operation
from moperator.approvals.describe import sentence_case


def test_update_names_object_record_and_fields() -> None:
    text = describe_operation(
        "update_salesforce_record",
        {"object_name": "Contact", "record_id": "003XYZ", "data": {"Title": "VP", "Email": "a@b.c"}},
    )
    assert text == "Update Contact record `003XYZ` with fields `Email`, `Title`"


def test_update_without_data_has_no_field_suffix() -> None:
    text = describe_operation(
        "update_salesforce_record",
        {"object_name": "Lead", "record_id": "00Q1", "data": {}},
    )
    assert text == "Update Lead record `00Q1`"


def test_create_and_delete() -> None:
    assert (
        describe_operation("create_salesforce_record", {"object_name": "Lead", "data": {"LastName": "Doe"}})
        == "Create a new Lead record with fields `LastName`"
    )
    assert (
        describe_operation("delete_salesforce_record", {"object_name": "Account", "record_id": "001A"})
        == "Delete Account record `001A`"
    )


def test_bulk_and_campaign_counts() -> None:
    assert (
        describe_operation(
            "bulk_update_records",
            {"object_name": "Contact", "records": [{"Id": "1"}, {"Id": "2"}]},
        )
        == "Bulk update 2 Contact records"
    )
    assert (
        describe_operation(
            "bulk_update_records", {"object_name": "Contact", "records": [{"Id": "1"}]}
        )
        == "Bulk update 1 Contact record"
    )
    assert (
        describe_operation(
            "add_contacts_to_campaign", {"campaign_id": "701C", "contact_ids": ["a", "b", "c"]}
        )
        == "Add 3 contacts to campaign `701C`"
    )


def test_unknown_tool_falls_back_to_generic_text() -> None:
    assert describe_operation("send_invoice", {"amount": 10}) == "Execute `send_invoice`"


def test_description_is_deterministic() -> None:
    args = {"object_name": "Contact", "record_id": "003", "data": {"B": 1, "A": 2}}
    assert describe_operation("update_salesforce_record", args) == describe_operation(
        "update_salesforce_record", dict(reversed(list(args.items())))
    )


def test_sentence_case_only_touches_first_character() -> None:
    assert sentence_case("Update Contact record `003`") == "update Contact record `003`"
    assert sentence_case("") == ""
