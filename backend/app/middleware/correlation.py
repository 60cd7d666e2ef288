"""Request correlation ids.

Each request gets an X-Request-ID (the caller's own value is echoed back when
present). The id lives in a context var that structlog reads, and the error
handlers put it next to the debug id they return.
"""

import uuid

from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI

REQUEST_ID_HEADER = "X-Request-ID"


def setup_correlation_middleware(app: FastAPI) -> None:
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name=REQUEST_ID_HEADER,
        generator=lambda: str(uuid.uuid4()),
        validator=None,  # gateway ids are not always UUIDs
        transformer=lambda value: value,
    )


def get_correlation_id() -> str | None:
    """The current request's id, or None outside a request (worker, scripts)."""
    return correlation_id.get(None)
