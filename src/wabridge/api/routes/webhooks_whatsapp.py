"""WhatsApp webhook routes - Meta Cloud API integration.

GET  /webhooks/whatsapp  -> subscription verification (hub.challenge echo)
POST /webhooks/whatsapp  -> event ingestion

Status codes for POST: 403 on signature failure (or no secret
configured), 400 on an unparseable envelope, 500 on storage failure,
200 otherwise, including per-event failures and empty test pings.

Logs contain no phone numbers or message bodies.
"""

import hmac

from fastapi import APIRouter, Depends, Header, Query, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from wabridge.api.deps import get_ingestor, get_settings
from wabridge.config import Settings
from wabridge.observability.logging import get_logger
from wabridge.observability.redaction import safe_log_context
from wabridge.whatsapp.ingestion import WebhookIngestor

router = APIRouter(prefix="/webhooks/whatsapp", tags=["webhooks"])

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"


@router.get("")
def verify_webhook(
    hub_mode: str | None = Query(None, alias="hub.mode"),
    hub_verify_token: str | None = Query(None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(None, alias="hub.challenge"),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Meta webhook verification endpoint.

    Meta sends a GET during webhook setup; hub.challenge is echoed back
    when hub.verify_token matches WHATSAPP_WEBHOOK_VERIFY_TOKEN.

    Returns:
        200 with hub.challenge if valid, 403 otherwise.
    """
    expected = settings.whatsapp.webhook_verify_token
    token_match = bool(expected) and hmac.compare_digest(
        (hub_verify_token or "").encode("utf-8"), expected.encode("utf-8")
    )

    if hub_mode == "subscribe" and token_match:
        logger.info(
            "webhook verification successful",
            extra={"extra_fields": safe_log_context(hub_mode=hub_mode)},
        )
        return Response(status_code=200, content=hub_challenge or "", media_type="text/plain")

    logger.warning(
        "webhook verification failed",
        extra={
            "extra_fields": safe_log_context(
                hub_mode=hub_mode or "missing",
                token_match=token_match if expected else "no_token_configured",
            )
        },
    )
    return Response(status_code=403, content="verification failed", media_type="text/plain")


@router.post("")
async def receive_webhook(
    request: Request,
    x_hub_signature_256: str | None = Header(None, alias=SIGNATURE_HEADER),
    ingestor: WebhookIngestor = Depends(get_ingestor),
) -> JSONResponse:
    """Receive a Meta Cloud API webhook delivery.

    The raw body is read before any JSON decoding so the signature is
    checked over the exact bytes Meta signed.
    """
    body_bytes = await request.body()
    result = await run_in_threadpool(ingestor.handle, body_bytes, x_hub_signature_256)

    if result.error is not None:
        return JSONResponse(
            status_code=result.status_code, content={"error": result.error.to_dict()}
        )
    return JSONResponse(status_code=200, content={"status": "ok", **result.summary()})
