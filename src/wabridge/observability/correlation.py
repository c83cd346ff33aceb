"""Request ID management for log correlation."""

import uuid
from contextvars import ContextVar, Token

# Context variable for request ID - accessible across async calls
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


def generate_request_id() -> str:
    """Generate a new request ID."""
    return str(uuid.uuid4())


def get_request_id() -> str:
    """Get current request ID from context."""
    return request_id_var.get()


def set_request_id(rid: str) -> Token[str]:
    """Set request ID in context."""
    return request_id_var.set(rid)


def reset_request_id(token: Token[str]) -> None:
    """Reset request ID to previous value."""
    request_id_var.reset(token)
