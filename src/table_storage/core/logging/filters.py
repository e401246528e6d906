# src/table_storage/core/logging/filters.py
"""
Logging filters

Correlation ID filter and helpers for logging.

Repository calls are coroutines, and several of them may be in flight on the
same event loop at once. Their log lines interleave, so callers tag a logical
unit of work (an HTTP request, a queue message, a batch job) with a correlation
id and every record emitted while that work runs carries it.

How it is intended to be used
------------------------------
1. The filter is installed by `make_dict_config()` (builder.py) on every handler:

     "filters": {"correlation_id": {"()": CorrelationIdFilter}},
     "handlers": {"console": {..., "filters": ["correlation_id", "redact"]}}

2. The caller sets an id at the start of its unit of work:

     token = set_correlation_id("job-42")
     try:
         await repo.create(entity)
     finally:
         reset_correlation_id(token)

3. Any log call in the same context (including inside the repository and the
   error classifier) then has `record.correlation_id == "job-42"`.

Why contextvars
---------------
`contextvars.ContextVar` follows the value across `await` boundaries and into
tasks created from that context, which `threading.local()` does not. When no id
has been set, the filter writes the sentinel "-" so formatters referencing
`%(correlation_id)s` never raise KeyError.
"""

import logging
from logging import LogRecord
import contextvars

# Default is None to indicate "no correlation id set".
_correlation_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


def set_correlation_id(correlation_id: str | None):
    """
    Set the correlation id in the current context and return the token to allow reset.

    Returns:
        token: contextvars.Token which can be passed to reset_correlation_id(token)
    """
    return _correlation_id_ctx.set(correlation_id)


def reset_correlation_id(token):
    """
    Reset the contextvar to the previously saved token returned by set_correlation_id().
    """
    _correlation_id_ctx.reset(token)


def get_correlation_id() -> str | None:
    """
    Retrieve the current context's correlation id, or None if none has been set.
    """
    return _correlation_id_ctx.get()


class CorrelationIdFilter(logging.Filter):
    """
    Logging filter that guarantees every LogRecord has a `correlation_id` attribute.

    Precedence:
      1. record.correlation_id, if the caller passed it explicitly via `extra`
      2. the contextvar value
      3. the sentinel "-"

    Always returns True: the filter annotates, it never drops records.
    """

    def filter(self, record: LogRecord) -> bool:
        record.correlation_id = (
            getattr(record, "correlation_id", None) or get_correlation_id() or "-"
        )
        return True


# Redact sensitive information
class RedactFilter(logging.Filter):
    SENSITIVE = {
        "password",
        "secret",
        "token",
        "authorization",
        "account_key",
        "accountkey",
        "connection_string",
        "sas_token",
        "sharedaccesssignature",
    }

    def filter(self, record: LogRecord) -> bool:
        # mask attributes on record that match SENSITIVE
        for key in list(record.__dict__.keys()):
            if key.lower() in self.SENSITIVE:
                record.__dict__[key] = "***REDACTED***"
        return True
