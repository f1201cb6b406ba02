"""Configuration for the operator services loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

from moperator.approvals.policy import normalize_emails
from moperator.context import (
    DEFAULT_AUTHORIZED_LIMIT,
    DEFAULT_UNAUTHORIZED_LIMIT,
    BulkLimits,
)
from moperator.salesforce import DEFAULT_LOGIN_URL, SalesforceConfig


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name, "").strip()
    return int(value) if value else default


@dataclass(frozen=True)
class Settings:
    """Runtime configuration shared by the MCP server, web app and CLI."""

    # Slack approval prompts
    slack_bot_token: str = ""
    slack_signing_secret: str = ""
    slack_approver_group_id: str = ""
    authorized_user_emails: str = ""  # comma-separated

    # Approval store (Redis); empty disables the approval workflow
    redis_url: str = ""

    # Bulk limits
    authorized_bulk_limit: int = DEFAULT_AUTHORIZED_LIMIT
    unauthorized_bulk_limit: int = DEFAULT_UNAUTHORIZED_LIMIT

    # Salesforce
    salesforce_instance_url: str = ""
    salesforce_access_token: str = ""
    salesforce_refresh_token: str = ""
    salesforce_client_id: str = ""
    salesforce_client_secret: str = ""
    salesforce_login_url: str = DEFAULT_LOGIN_URL

    # Identity used for MCP calls
    requester_id: str = ""
    approval_channel: str = ""

    # Web server settings
    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_env(cls) -> Settings:
        """Load configuration from environment variables."""
        return cls(
            slack_bot_token=os.environ.get("SLACK_BOT_TOKEN", ""),
            slack_signing_secret=os.environ.get("SLACK_SIGNING_SECRET", ""),
            slack_approver_group_id=os.environ.get("SLACK_APPROVER_GROUP_ID", ""),
            authorized_user_emails=os.environ.get("AUTHORIZED_USER_EMAILS", ""),
            redis_url=os.environ.get("REDIS_URL") or os.environ.get("KV_URL", ""),
            authorized_bulk_limit=_int_env(
                "MOPERATOR_AUTHORIZED_BULK_LIMIT", DEFAULT_AUTHORIZED_LIMIT
            ),
            unauthorized_bulk_limit=_int_env(
                "MOPERATOR_UNAUTHORIZED_BULK_LIMIT", DEFAULT_UNAUTHORIZED_LIMIT
            ),
            salesforce_instance_url=os.environ.get("SALESFORCE_INSTANCE_URL", ""),
            salesforce_access_token=os.environ.get("SALESFORCE_ACCESS_TOKEN", ""),
            salesforce_refresh_token=os.environ.get("SALESFORCE_REFRESH_TOKEN", ""),
            salesforce_client_id=os.environ.get("SALESFORCE_CLIENT_ID", ""),
            salesforce_client_secret=os.environ.get("SALESFORCE_CLIENT_SECRET", ""),
            salesforce_login_url=os.environ.get(
                "SALESFORCE_LOGIN_URL", DEFAULT_LOGIN_URL
            ),
            requester_id=os.environ.get("MOPERATOR_REQUESTER_ID", ""),
            approval_channel=os.environ.get("MOPERATOR_APPROVAL_CHANNEL", ""),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=_int_env("PORT", 8080),
        )

    @property
    def authorized_emails(self) -> frozenset[str]:
        return normalize_emails(self.authorized_user_emails)

    @property
    def bulk_limits(self) -> BulkLimits:
        return BulkLimits(
            authorized=self.authorized_bulk_limit,
            unauthorized=self.unauthorized_bulk_limit,
        )

    @property
    def salesforce_config(self) -> SalesforceConfig:
        """Create a SalesforceConfig from the operator settings."""
        return SalesforceConfig(
            instance_url=self.salesforce_instance_url,
            access_token=self.salesforce_access_token,
            refresh_token=self.salesforce_refresh_token,
            client_id=self.salesforce_client_id,
            client_secret=self.salesforce_client_secret,
            login_url=self.salesforce_login_url,
        )

    def validate(self) -> list[str]:
        """Return a list of validation errors, empty if valid."""
        errors: list[str] = []
        if not self.slack_bot_token:
            errors.append("SLACK_BOT_TOKEN is required")
        if not self.redis_url:
            errors.append("REDIS_URL (or KV_URL) is required for approvals")
        if not self.authorized_emails:
            errors.append("AUTHORIZED_USER_EMAILS is empty; nobody can approve")
        if self.authorized_bulk_limit <= 0 or self.unauthorized_bulk_limit <= 0:
            errors.append("Bulk limits must be positive")
        return errors


__all__ = ["Settings"]
