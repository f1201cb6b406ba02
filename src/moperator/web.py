"""Slack interactivity endpoint for resolving approval prompts.

Configure the Slack app's Interactivity Request URL to point at
``/slack/interactions``. Slack posts a form-encoded body whose ``payload``
field holds the interaction JSON.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import parse_qs

from slack_sdk.signature import SignatureVerifier
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from moperator.approvals import ApprovalWorkflow, InteractionEvent


logger = logging.getLogger(__name__)


def _parse_payload(body: bytes) -> dict[str, Any] | None:
    fields = parse_qs(body.decode("utf-8"))
    raw = fields.get("payload", [None])[0]
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def create_app(
    workflow: ApprovalWorkflow,
    signing_secret: str,
    *,
    verifier: SignatureVerifier | None = None,
) -> Starlette:
    """Build the Starlette app that receives Slack button clicks."""

    if not signing_secret and verifier is None:
        raise ValueError("SLACK_SIGNING_SECRET is required to verify Slack requests")
    verifier = verifier or SignatureVerifier(signing_secret)

    async def interactions(request: Request) -> Response:
        body = await request.body()
        if not verifier.is_valid_request(body, dict(request.headers)):
            logger.warning("Rejected Slack interaction with an invalid signature")
            return PlainTextResponse("Invalid signature", status_code=401)

        payload = _parse_payload(body)
        if payload is None:
            return PlainTextResponse("Missing payload", status_code=400)

        event = InteractionEvent.from_slack_payload(payload)
        if event is None:
            return PlainTextResponse("ok")

        try:
            outcome = await workflow.handle_interaction(event)
        except Exception:
            logger.exception("Slack interaction handler failed")
            return PlainTextResponse("Internal error", status_code=500)

        logger.info(
            "Interaction %s by %s resolved as %s",
            event.action_id,
            event.clicker_id,
            outcome.value,
        )
        return PlainTextResponse("ok")

    async def healthz(_: Request) -> Response:
        return JSONResponse(
            {
                "service": "moperator",
                "status": "ok",
                "approvals": workflow.store.available,
            }
        )

    return Starlette(
        routes=[
            Route("/slack/interactions", interactions, methods=["POST"]),
            Route("/healthz", healthz, methods=["GET"]),
        ],
    )


__all__ = ["create_app"]
