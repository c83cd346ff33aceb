"""Contact endpoints (read-only; contacts change only through ingestion).

GET /contacts                  -> list, most recent conversation first
GET /contacts/{phone_number}   -> single contact (E.164, "+" optional)
"""

from fastapi import APIRouter, Depends, Query

from wabridge.api.auth import require_permission
from wabridge.api.deps import get_store
from wabridge.domain.api_keys import PERMISSION_READ_CONTACTS
from wabridge.domain.models import APIKey
from wabridge.domain.validation import normalize_phone_number, validate_phone_number
from wabridge.errors import NotFoundError
from wabridge.infra.pagination import DEFAULT_LIMIT, Pagination
from wabridge.infra.store import Store

router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.get("")
def list_contacts(
    limit: int = Query(DEFAULT_LIMIT),
    offset: int = Query(0),
    _: APIKey = Depends(require_permission(PERMISSION_READ_CONTACTS)),
    store: Store = Depends(get_store),
) -> dict:
    pagination = Pagination.from_params(limit, offset)
    with store.transaction() as session:
        items, total = session.list_contacts(pagination)
    pagination.set_total(total)
    return {
        "data": [c.to_dict() for c in items],
        "pagination": pagination.to_response(),
    }


@router.get("/{phone_number}")
def get_contact(
    phone_number: str,
    _: APIKey = Depends(require_permission(PERMISSION_READ_CONTACTS)),
    store: Store = Depends(get_store),
) -> dict:
    phone = validate_phone_number(normalize_phone_number(phone_number))
    with store.transaction() as session:
        contact = session.get_contact(phone)
    if contact is None:
        raise NotFoundError("contact not found")
    return {"contact": contact.to_dict()}
