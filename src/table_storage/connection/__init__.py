from .manager import Lazy, TableConnectionManager
from .strings import (
    ensure_transport_allowed,
    is_insecure_endpoint,
    parse_connection_string,
    redact_connection_string,
)

__all__ = [
    "Lazy",
    "TableConnectionManager",
    "ensure_transport_allowed",
    "is_insecure_endpoint",
    "parse_connection_string",
    "redact_connection_string",
]
