"""FastAPI application factory."""

from __future__ import annotations

import time

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from wabridge.config import Settings, load_settings
from wabridge.domain.message_state import MessageStateMachine
from wabridge.domain.outbound import MessageSender, OutboundService
from wabridge.domain.validation import normalize_phone_number
from wabridge.errors import AppError
from wabridge.infra.store import Store, build_store
from wabridge.observability.correlation import (
    REQUEST_ID_HEADER,
    generate_request_id,
    reset_request_id,
    set_request_id,
)
from wabridge.observability.logging import configure_logging, get_logger
from wabridge.observability.redaction import safe_log_context
from wabridge.whatsapp.ingestion import WebhookIngestor
from wabridge.whatsapp.meta_sender import MetaSender

from .routers import public
from .routes import api_keys, contacts, messages, webhooks_whatsapp

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    store: Store | None = None,
    sender: MessageSender | None = None,
) -> FastAPI:
    """Create the FastAPI app and wire its collaborators.

    Args:
        settings: Service settings. If None, loaded from the environment.
        store: Storage backend. If None, built from settings.store_backend.
        sender: Outbound provider client. If None, a MetaSender.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = load_settings()
    configure_logging(settings.log_level)

    for problem in settings.validate():
        logger.warning("configuration problem", extra={"extra_fields": {"problem": problem}})

    if store is None:
        store = build_store(settings)
    if sender is None:
        sender = MetaSender(settings.whatsapp)

    app = FastAPI(
        title="wabridge",
        docs_url=None,
        redoc_url=None,
    )

    state_machine = MessageStateMachine(store)
    business_number = normalize_phone_number(settings.whatsapp.display_phone_number)
    app.state.settings = settings
    app.state.store = store
    app.state.ingestor = WebhookIngestor(
        store,
        webhook_secret=settings.whatsapp.webhook_secret,
        default_to_number=business_number,
        state_machine=state_machine,
    )
    app.state.outbound = OutboundService(
        store,
        sender,
        from_number=business_number,
        state_machine=state_machine,
    )

    @app.middleware("http")
    async def access_log_middleware(request: Request, call_next) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request completed",
            extra={
                "extra_fields": safe_log_context(
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
            },
        )
        return response

    # Registered last so it runs first and the access log carries the request ID.
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        token = set_request_id(rid)
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = rid
            return response
        finally:
            reset_request_id(token)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "request failed",
                extra={"extra_fields": {"code": exc.code, "path": request.url.path}},
            )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

    app.include_router(public.router)
    app.include_router(webhooks_whatsapp.router)
    app.include_router(messages.router)
    app.include_router(contacts.router)
    app.include_router(api_keys.router)

    return app
