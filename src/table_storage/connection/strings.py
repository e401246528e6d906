"""
Connection string helpers.

A storage connection string is a `;`-separated list of `Key=Value` pairs:

    DefaultEndpointsProtocol=https;AccountName=acct;AccountKey=...;EndpointSuffix=core.windows.net
    DefaultEndpointsProtocol=http;AccountName=devstoreaccount1;AccountKey=...;TableEndpoint=http://127.0.0.1:10002/devstoreaccount1;
    UseDevelopmentStorage=true

Values may themselves contain `=` (base64 keys), so only the first `=` splits a pair.
"""

from __future__ import annotations

from urllib.parse import urlparse

# Keys whose values must never reach a log line.
_SECRET_KEYS = {"accountkey", "sharedaccesssignature"}


def parse_connection_string(connection_string: str) -> dict[str, str]:
    """
    Split a connection string into a case-insensitive (lower-cased keys) mapping.

    Raises:
        ValueError: the string is empty or contains a segment without `=`.
    """
    if not connection_string or not connection_string.strip():
        raise ValueError("Connection string is empty")

    parsed: dict[str, str] = {}
    for segment in connection_string.split(";"):
        segment = segment.strip()
        if not segment:
            continue
        key, sep, value = segment.partition("=")
        if not sep or not key:
            raise ValueError(f"Malformed connection string segment: {key or segment!r}")
        parsed[key.strip().lower()] = value.strip()

    if not parsed:
        raise ValueError("Connection string is empty")
    return parsed


def is_insecure_endpoint(connection_string: str) -> bool:
    """
    True when entity traffic would go over plain HTTP.

    An explicit TableEndpoint wins; otherwise DefaultEndpointsProtocol decides.
    The local emulator shortcut (UseDevelopmentStorage=true) is always HTTP.
    """
    parts = parse_connection_string(connection_string)

    if parts.get("usedevelopmentstorage", "").lower() == "true":
        return True

    endpoint = parts.get("tableendpoint")
    if endpoint:
        return urlparse(endpoint).scheme.lower() == "http"

    return parts.get("defaultendpointsprotocol", "https").lower() == "http"


def ensure_transport_allowed(connection_string: str, *, allow_insecure_connection: bool) -> None:
    """
    Refuse to build a handle for a non-TLS endpoint unless explicitly allowed.

    Raises:
        ValueError: malformed connection string, or HTTP endpoint with the flag off.
    """
    if is_insecure_endpoint(connection_string) and not allow_insecure_connection:
        raise ValueError(
            "Connection string targets a non-TLS endpoint; "
            "set allow_insecure_connection=True for local emulators"
        )


def redact_connection_string(connection_string: str) -> str:
    """Return the connection string with account keys and SAS tokens masked, for logging."""
    segments = []
    for segment in connection_string.split(";"):
        key, sep, value = segment.partition("=")
        if sep and key.strip().lower() in _SECRET_KEYS:
            value = "***"
        segments.append(f"{key}{sep}{value}")
    return ";".join(segments)
