"""
Typed decoding of backend error bodies.

Table services answer failures with an OData error document, in one of two shapes:

    {"odata.error": {"code": "EntityAlreadyExists",
                     "message": {"lang": "en-US", "value": "The specified entity already exists.\\nRequestId:..."}}}

    {"error": {"code": "InvalidInput", "message": "One of the request inputs is not valid."}}

A handle may also attach the decoded object directly as
`details={"odataError": {...}}`. `ErrorDetail.from_backend_error()` turns any of
these into one small value, once, so the classifier never drills into dicts.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping

from table_storage.backends.base import TableBackendError

# Members that may hold the nested error object, in lookup order.
_ERROR_MEMBERS = ("odata.error", "odataError", "error")


def _message_text(raw: Any) -> str:
    # "message" is either a plain string or {"lang": ..., "value": ...}
    if isinstance(raw, Mapping):
        return str(raw.get("value", ""))
    if raw is None:
        return ""
    return str(raw)


def _find_error_object(payload: Mapping[str, Any]) -> Mapping[str, Any] | None:
    for member in _ERROR_MEMBERS:
        candidate = payload.get(member)
        if isinstance(candidate, Mapping):
            return candidate
    return None


@dataclass(frozen=True)
class ErrorDetail:
    """
    The decoded nested error object.

    Attributes:
        code: backend error code ("" when the document carries none).
        message: the detail message, possibly multi-line.
    """

    code: str
    message: str = ""

    @property
    def lines(self) -> list[str]:
        """Detail message split into lines, original order, carriage returns dropped."""
        return [line.rstrip("\r") for line in self.message.split("\n")]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ErrorDetail | None:
        error = _find_error_object(payload)
        if error is None:
            return None
        return cls(code=str(error.get("code") or ""), message=_message_text(error.get("message")))

    @classmethod
    def from_backend_error(cls, exc: TableBackendError) -> ErrorDetail | None:
        """
        Decode the error detail, or return None when the error is not structured.

        Structured means: the error message is a JSON object. Anything else
        (plain text, HTML from a proxy, an empty body) is a transport-level
        failure the classifier must not wrap.
        """
        message = exc.message if isinstance(exc.message, str) else ""
        if not message.lstrip().startswith("{"):
            return None

        try:
            payload = json.loads(message)
        except json.JSONDecodeError:
            return None
        if not isinstance(payload, Mapping):
            return None

        # A pre-decoded object supplied by the handle wins over the body.
        if exc.details:
            detail = cls.from_payload(exc.details)
            if detail is not None:
                return detail

        return cls.from_payload(payload) or cls(code="", message=message)
