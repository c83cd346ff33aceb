"""API key issuance.

POST /api-keys -> create a key (manage_api_keys). The plaintext key is in
the response once and is not recoverable afterwards.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from wabridge.api.auth import require_permission
from wabridge.api.deps import get_settings, get_store
from wabridge.config import Settings
from wabridge.domain.api_keys import PERMISSION_MANAGE_API_KEYS, issue_api_key
from wabridge.domain.models import APIKey
from wabridge.errors import ValidationError
from wabridge.infra.store import Store
from wabridge.infra.time import utc_now
from wabridge.observability.logging import get_logger
from wabridge.observability.redaction import safe_log_context

router = APIRouter(prefix="/api-keys", tags=["api-keys"])

logger = get_logger(__name__)


class CreateApiKeyRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    permissions: list[str] = Field(min_length=1)
    expires_at: datetime | None = None


@router.post("", status_code=201)
def create_api_key(
    body: CreateApiKeyRequest,
    caller: APIKey = Depends(require_permission(PERMISSION_MANAGE_API_KEYS)),
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Issue a new API key.

    Returns:
        {"api_key": {...metadata...}, "key": "<plaintext>"}
    """
    if body.expires_at is not None:
        if body.expires_at.tzinfo is None:
            raise ValidationError("expires_at must include a timezone")
        if body.expires_at <= utc_now():
            raise ValidationError("expires_at must be in the future")

    with store.transaction() as session:
        api_key, plain_key = issue_api_key(
            session,
            body.name,
            body.permissions,
            expires_at=body.expires_at,
            rounds=settings.api_key_hash_rounds,
        )

    logger.info(
        "api key issued",
        extra={
            "extra_fields": safe_log_context(
                api_key_id=api_key.id,
                key_prefix=api_key.key_prefix,
                issued_by=caller.id,
            )
        },
    )
    return {"api_key": api_key.to_dict(), "key": plain_key}
