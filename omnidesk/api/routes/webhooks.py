"""Webhook endpoints for channel integrations."""

import json
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from omnidesk.api.dependencies import PlatformDep
from omnidesk.core.exceptions import AppException
from omnidesk.models import ChannelAccount, ChannelAccountStatus, ChannelType
from omnidesk.services.channels import ChannelAdapter
from omnidesk.services.platform import Platform

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

SIGNATURE_HEADERS: dict[ChannelType, str] = {
    ChannelType.WHATSAPP: "X-Twilio-Signature",
    ChannelType.SMS: "X-Twilio-Signature",
    ChannelType.TELEGRAM: "X-Telegram-Bot-Api-Secret-Token",
    ChannelType.FACEBOOK: "X-Hub-Signature-256",
    ChannelType.INSTAGRAM: "X-Hub-Signature-256",
    ChannelType.EMAIL: "X-Webhook-Signature",
}

# Twilio expects TwiML or an empty body
TWILIO_CHANNELS = {ChannelType.WHATSAPP, ChannelType.SMS}


async def _account(platform: Platform, company_id: str, channel: ChannelType) -> ChannelAccount | None:
    accounts = await platform.storage.list_channel_accounts(company_id, channel=channel)
    connected = [a for a in accounts if a.status == ChannelAccountStatus.CONNECTED]
    return (connected or accounts or [None])[0]


async def _read_payload(request: Request, body: bytes) -> dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}
    if not body:
        return {}
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body") from e
    return payload if isinstance(payload, dict) else {}


async def _authenticate(
    platform: Platform,
    channel: ChannelType,
    company_id: str,
    request: Request,
) -> tuple[ChannelAdapter, bytes]:
    """Resolve the adapter and check the request signature; returns the raw body."""
    if channel not in platform.channels:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unsupported channel: {channel.value}",
        )
    adapter = platform.channels.get(channel)

    body = await request.body()
    account = await _account(platform, company_id, channel)
    header = SIGNATURE_HEADERS.get(channel)
    signature = request.headers.get(header) if header else None
    if not adapter.validate_webhook(account, body, signature, url=str(request.url)):
        logger.warning("Rejected webhook with invalid signature", channel=channel.value, company_id=company_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")
    return adapter, body


def _ack(channel: ChannelType, **content: Any) -> Response:
    if channel in TWILIO_CHANNELS:
        return Response(status_code=status.HTTP_200_OK)
    return JSONResponse({"status": "ok", **content})


@router.get("/{channel}/{company_id}")
async def verify_subscription(
    channel: ChannelType,
    company_id: str,
    platform: PlatformDep,
    mode: str | None = Query(None, alias="hub.mode"),
    verify_token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str | None = Query(None, alias="hub.challenge"),
) -> PlainTextResponse:
    """Meta webhook subscription handshake."""
    account = await _account(platform, company_id, channel)
    expected = account.credentials.get("verify_token") if account else None
    if mode != "subscribe" or not expected or verify_token != expected:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")
    return PlainTextResponse(challenge or "")


@router.post("/{channel}/{company_id}")
async def channel_webhook(
    channel: ChannelType,
    company_id: str,
    request: Request,
    platform: PlatformDep,
) -> Response:
    """Receive a message (or delivery receipt) from any channel.

    Processing errors are logged and acknowledged so providers don't retry
    them; only signature failures are rejected.
    """
    adapter, body = await _authenticate(platform, channel, company_id, request)
    payload = await _read_payload(request, body)

    try:
        event = await adapter.parse_webhook(payload)
        if event is None:
            receipt = adapter.parse_status_callback(payload)
            if receipt is not None:
                external_message_id, delivery_status = receipt
                await platform.messenger.update_delivery_status(external_message_id, delivery_status)
            return _ack(channel)

        result = await platform.inbound.process(company_id, event)
    except AppException as e:
        logger.warning(
            "Webhook not processed",
            channel=channel.value,
            company_id=company_id,
            code=e.code,
            error=e.message,
        )
        return _ack(channel, processed=False)
    except Exception as e:
        logger.error("Error processing webhook", channel=channel.value, error=str(e), exc_info=True)
        return _ack(channel, processed=False)

    return _ack(
        channel,
        processed=True,
        message_id=result.message.id,
        conversation_id=result.conversation.id,
        decision=result.outcome.kind.value if result.outcome else None,
    )


@router.post("/{channel}/{company_id}/status")
async def status_callback(
    channel: ChannelType,
    company_id: str,
    request: Request,
    platform: PlatformDep,
) -> Response:
    """Delivery receipts posted to a dedicated URL (Twilio ``StatusCallback``)."""
    adapter, body = await _authenticate(platform, channel, company_id, request)
    receipt = adapter.parse_status_callback(await _read_payload(request, body))
    if receipt is None:
        logger.debug("Status callback without a usable status", channel=channel.value)
        return _ack(channel)

    external_message_id, delivery_status = receipt
    logger.debug(
        "Status callback",
        channel=channel.value,
        company_id=company_id,
        external_message_id=external_message_id,
        status=delivery_status.value,
    )
    await platform.messenger.update_delivery_status(external_message_id, delivery_status)
    return _ack(channel)
