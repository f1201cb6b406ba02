"""Minimal async Salesforce REST client used by the CRM tools.

Access tokens are owned by the client instance: an explicit ``(token,
expires_at)`` pair refreshed through the OAuth refresh-token grant when it
goes stale or the API answers 401.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx


logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "v60.0"
DEFAULT_LOGIN_URL = "https://login.salesforce.com"
# Salesforce omits expires_in; sessions default to two hours.
DEFAULT_TOKEN_LIFETIME_SECONDS = 2 * 60 * 60
TOKEN_REFRESH_MARGIN_SECONDS = 60
COLLECTION_BATCH_SIZE = 200
DEFAULT_CAMPAIGN_MEMBER_STATUS = "Sent"


class SalesforceAPIError(Exception):
    """Represents an error response returned from the Salesforce API."""

    def __init__(self, *, status_code: int, url: str, body: str) -> None:
        self.status_code = status_code
        self.url = url
        self.body = body
        super().__init__(
            f"Salesforce API request failed; status={status_code}; url={url}; body={body}"
        )


class SalesforceNotConfiguredError(RuntimeError):
    """Raised when a tool needs Salesforce but no credentials were supplied."""


@dataclass(frozen=True)
class SalesforceConfig:
    """Connection settings for the Salesforce REST API."""

    instance_url: str = ""
    access_token: str = ""
    refresh_token: str = ""
    client_id: str = ""
    client_secret: str = ""
    login_url: str = DEFAULT_LOGIN_URL
    api_version: str = DEFAULT_API_VERSION

    @property
    def configured(self) -> bool:
        return bool(self.instance_url and (self.access_token or self.can_refresh))

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token and self.client_id and self.client_secret)


@dataclass(slots=True)
class _AccessToken:
    value: str
    expires_at: float

    def stale(self, now: float) -> bool:
        return not self.value or now >= self.expires_at - TOKEN_REFRESH_MARGIN_SECONDS


class SalesforceClient:
    """Thin wrapper over the Salesforce REST and sObject Collections APIs."""

    def __init__(
        self,
        config: SalesforceConfig,
        *,
        http: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._http = http or httpx.AsyncClient(timeout=30.0)
        self._clock = clock
        self._instance_url = config.instance_url.rstrip("/")
        # A token supplied up front has no known expiry; a 401 triggers refresh.
        self._token = _AccessToken(
            value=config.access_token,
            expires_at=math.inf if config.access_token else 0.0,
        )

    @property
    def configured(self) -> bool:
        return self._config.configured

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _ensure_token(self) -> str:
        if not self.configured:
            raise SalesforceNotConfiguredError(
                "Salesforce not configured. Set SALESFORCE_INSTANCE_URL and "
                "SALESFORCE_ACCESS_TOKEN (or a refresh token with client credentials)."
            )
        if self._token.stale(self._clock()):
            await self._refresh()
        return self._token.value

    async def _refresh(self) -> None:
        if not self._config.can_refresh:
            raise SalesforceNotConfiguredError(
                "Salesforce access token expired and no refresh credentials are configured."
            )

        url = f"{self._config.login_url.rstrip('/')}/services/oauth2/token"
        response = await self._http.post(
            url,
            data={
                "grant_type": "refresh_token",
                "refresh_token": self._config.refresh_token,
                "client_id": self._config.client_id,
                "client_secret": self._config.client_secret,
            },
        )
        if response.is_error:
            raise SalesforceAPIError(
                status_code=response.status_code, url=url, body=response.text
            )

        payload = response.json()
        lifetime = float(payload.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS)
        self._token = _AccessToken(
            value=payload["access_token"], expires_at=self._clock() + lifetime
        )
        if payload.get("instance_url"):
            self._instance_url = str(payload["instance_url"]).rstrip("/")
        logger.info("Refreshed Salesforce access token")

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        if path.startswith("/services/"):
            return f"{self._instance_url}{path}"
        return f"{self._instance_url}/services/data/{self._config.api_version}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        url = self._url(path)
        for attempt in range(2):
            token = await self._ensure_token()
            response = await self._http.request(
                method,
                url,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
            if (
                response.status_code == 401
                and attempt == 0
                and self._config.can_refresh
            ):
                self._token.expires_at = 0.0
                continue
            break

        if response.is_error:
            raise SalesforceAPIError(
                status_code=response.status_code, url=url, body=response.text
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def query(self, soql: str) -> list[dict[str, Any]]:
        payload = await self._request("GET", "query", params={"q": soql})
        records: list[dict[str, Any]] = list(payload.get("records", []))
        while not payload.get("done", True) and payload.get("nextRecordsUrl"):
            payload = await self._request("GET", payload["nextRecordsUrl"])
            records.extend(payload.get("records", []))
        return records

    async def describe_object(self, object_name: str) -> dict[str, Any]:
        return await self._request("GET", f"sobjects/{object_name}/describe")

    async def describe_global(self) -> dict[str, Any]:
        return await self._request("GET", "sobjects")

    async def create_record(self, object_name: str, data: Mapping[str, Any]) -> str:
        payload = await self._request("POST", f"sobjects/{object_name}", json=dict(data))
        return str(payload["id"])

    async def update_record(
        self, object_name: str, record_id: str, data: Mapping[str, Any]
    ) -> None:
        await self._request("PATCH", f"sobjects/{object_name}/{record_id}", json=dict(data))

    async def delete_record(self, object_name: str, record_id: str) -> None:
        await self._request("DELETE", f"sobjects/{object_name}/{record_id}")

    async def _collection(
        self, method: str, object_name: str, records: Sequence[Mapping[str, Any]]
    ) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        for start in range(0, len(records), COLLECTION_BATCH_SIZE):
            batch = [
                {"attributes": {"type": object_name}, **record}
                for record in records[start : start + COLLECTION_BATCH_SIZE]
            ]
            payload = await self._request(
                method,
                "composite/sobjects",
                json={"allOrNone": False, "records": batch},
            )
            results.extend(payload or [])
        return results

    async def bulk_update(
        self, object_name: str, records: Sequence[Mapping[str, Any]]
    ) -> dict[str, Any]:
        results = await self._collection("PATCH", object_name, records)
        return _summarize(results)

    async def add_to_campaign(
        self,
        campaign_id: str,
        contact_ids: Sequence[str],
        status: str | None = None,
    ) -> dict[str, Any]:
        members = [
            {
                "CampaignId": campaign_id,
                "ContactId": contact_id,
                "Status": status or DEFAULT_CAMPAIGN_MEMBER_STATUS,
            }
            for contact_id in contact_ids
        ]
        results = await self._collection("POST", "CampaignMember", members)
        return _summarize(results)


def _summarize(results: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    errors: list[str] = []
    for result in results:
        if result.get("success"):
            continue
        for error in result.get("errors") or []:
            errors.append(str(error.get("message", error)))
    succeeded = sum(1 for result in results if result.get("success"))
    return {
        "success": succeeded,
        "failed": len(results) - succeeded,
        "errors": errors,
    }


__all__ = [
    "SalesforceAPIError",
    "SalesforceClient",
    "SalesforceConfig",
    "SalesforceNotConfiguredError",
]
