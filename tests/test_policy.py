from __future__ import annotations

from conftest import FakeDirectory, run

from moperator.approvals import AuthorizationPolicy, ChatUser, approver_mention
from moperator.approvals.policy import normalize_emails


def test_email_match_is_case_insensitive() -> None:
    directory = FakeDirectory({"U1": ChatUser(id="U1", email="Boss@Example.com")})
    policy = AuthorizationPolicy(directory, "boss@example.com, other@example.com")

    assert run(policy.is_authorized("U1")) is True


def test_unknown_user_is_not_authorized() -> None:
    directory = FakeDirectory({"U1": ChatUser(id="U1", email="someone@example.com")})
    policy = AuthorizationPolicy(directory, ["boss@example.com"])

    assert run(policy.is_authorized("U1")) is False
    assert run(policy.is_authorized("U2")) is False


def test_user_without_email_is_not_authorized() -> None:
    directory = FakeDirectory({"U1": ChatUser(id="U1", email=None)})
    policy = AuthorizationPolicy(directory, ["boss@example.com"])

    assert run(policy.is_authorized("U1")) is False


def test_directory_failure_fails_closed() -> None:
    directory = FakeDirectory(error=RuntimeError("slack down"))
    policy = AuthorizationPolicy(directory, ["boss@example.com"])

    assert run(policy.is_authorized("U1")) is False


def test_empty_allow_list_authorizes_nobody_without_lookup() -> None:
    directory = FakeDirectory({"U1": ChatUser(id="U1", email="boss@example.com")})
    policy = AuthorizationPolicy(directory, "")

    assert run(policy.is_authorized("U1")) is False
    assert directory.calls == []


def test_normalize_emails_drops_blanks() -> None:
    assert normalize_emails(" A@x.com ,, b@y.com ") == frozenset({"a@x.com", "b@y.com"})
    assert normalize_emails(None) == frozenset()


def test_approver_mention() -> None:
    assert approver_mention("S0123") == "<!subteam^S0123>"
    assert approver_mention("") == "@approvers"
