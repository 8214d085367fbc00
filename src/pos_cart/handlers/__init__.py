"""Handler layer for HTTP endpoints.

This layer contains the HTTP request/response handlers.
Handlers depend on services (business logic), not directly on repositories,
and translate reported errors into HTTP status codes.

Architecture:
    Handler -> Service -> Repository
    (HTTP)  -> (Business) -> (Data Access)
"""

from .cart_handler import CartHandler
from .errors import status_for, to_http_exception, translate_errors
from .inventory_handler import InventoryHandler
from .session_handler import SessionHandler, parse_user_id

__all__ = [
    "CartHandler",
    "InventoryHandler",
    "SessionHandler",
    "parse_user_id",
    "status_for",
    "to_http_exception",
    "translate_errors",
]
