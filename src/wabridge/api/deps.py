"""Request-scoped accessors for the collaborators wired by create_app()."""

from fastapi import Request

from wabridge.config import Settings
from wabridge.domain.outbound import OutboundService
from wabridge.infra.store import Store
from wabridge.whatsapp.ingestion import WebhookIngestor


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_ingestor(request: Request) -> WebhookIngestor:
    return request.app.state.ingestor


def get_outbound(request: Request) -> OutboundService:
    return request.app.state.outbound
