# src/table_storage/core/logging/builder.py
"""
Logging builder: create and apply a dictConfig logging configuration and optionally
wire a background QueueListener to decouple log IO from the event loop.

This module:
 - builds a dictConfig-compatible mapping from Settings
 - allows a queue-backed logging mode (LOG_USE_QUEUE) so handlers that write files
   run in a background thread instead of blocking coroutines mid-request
 - provides a NonBlockingQueueHandler that drops (and counts) records when a
   bounded queue is full rather than stalling producers
 - stamps producer-side filters (CorrelationIdFilter, RedactFilter) on the QueueHandler
   so contextvars and redaction run in the producing context
 - exposes stop_queue_logging() to flush & stop the background listener at shutdown.

Configuration knobs (on the Settings object):
 - LOG_USE_QUEUE: bool - enable queue-backed logging
 - LOG_QUEUE_MAX_SIZE: int - if > 0, use a bounded queue with this size; 0 means unbounded.
 - LOG_QUEUE_BLOCKING: bool - if True and max_size > 0, producers block on a full queue;
   if False, NonBlockingQueueHandler drops records when full.
 - LOG_QUEUE_DROP_WARNING_THRESHOLD: int - warn every N dropped records.
 - LOG_TO_STDOUT, LOG_DIR, LOG_FORMAT, LOG_LEVEL, ENABLE_AZURE_HTTP_LOGGING, ENV.

Settings-like objects with only some of the queue knobs are accepted (getattr defaults),
which keeps the builder usable from tests with a SimpleNamespace.
"""

from __future__ import annotations

from pathlib import Path
import logging
import logging.config
import queue as _queue
import threading
from typing import Optional
from logging.handlers import QueueHandler, QueueListener

from table_storage.utils.distribution import DISTRIBUTION_NAME

from .formatters import JsonFormatter, ColorFormatter
from .filters import CorrelationIdFilter, RedactFilter
from .handlers import (
    get_console_handler,
    get_file_handler,
    get_error_file_handler,
    get_error_console_handler,
)

# Settings type (avoid calling get_settings() here to prevent import-time side effects)
from table_storage.config.settings import Settings

# Module-level references to the running QueueListener and its queue so shutdown can stop them
_QUEUE_LISTENER: Optional[QueueListener] = None
_QUEUE: Optional[_queue.Queue] = None

# Diagnostics for dropped logs (when using a bounded non-blocking queue)
_DROPPED_LOGS_COUNT = 0
_DROPPED_LOGS_LOCK = threading.Lock()

# Third-party loggers the azure SDK emits through. The HTTP policy logs every request
# and response header at INFO, which drowns repository events.
_AZURE_LOGGERS = ("azure", "azure.core.pipeline.policies.http_logging_policy")


class NonBlockingQueueHandler(QueueHandler):
    """
    QueueHandler variant that does not block producers when a bounded queue is full.

    On Full the record is dropped, the module-level drop counter is incremented,
    and handleError(record) reports the failure through logging's own error hook.
    """

    def __init__(self, q: _queue.Queue):
        super().__init__(q)

    def emit(self, record: logging.LogRecord) -> None:
        global _DROPPED_LOGS_COUNT
        try:
            record = self.prepare(record)
            self.queue.put_nowait(record)
        except _queue.Full:
            with _DROPPED_LOGS_LOCK:
                _DROPPED_LOGS_COUNT += 1
            # logging must never raise into the producer
            self.handleError(record)


def get_queue_stats() -> dict:
    """Return small diagnostics about queue usage (dropped logs count)."""
    with _DROPPED_LOGS_LOCK:
        return {"dropped_logs": _DROPPED_LOGS_COUNT, "queue_present": _QUEUE is not None}


# -----------------------
# dictConfig builder
# -----------------------
def make_dict_config(settings: Settings) -> dict:
    """
    Build the dictConfig mapping using the provided settings.

    The returned mapping includes:
      - formatters: "standard" (color in text mode) and "json"
      - filters: "correlation_id", "redact"
      - handlers: console, plus (file, error_file) OR error_console depending on LOG_TO_STDOUT
      - loggers: root and the azure SDK loggers
    """
    formatters = {
        "standard": {
            "()": ColorFormatter if settings.LOG_FORMAT == "text" else logging.Formatter,
            "format": "%(asctime)s | %(levelname)s | %(name)s | %(correlation_id)s | %(message)s",
        },
        "json": {
            "()": JsonFormatter,
            "env": settings.ENV,
            "service": DISTRIBUTION_NAME,
        },
    }

    filters = {
        "correlation_id": {"()": CorrelationIdFilter},
        "redact": {"()": RedactFilter},
    }

    handlers: dict[str, dict] = {"console": get_console_handler(settings)}

    if (not settings.LOG_TO_STDOUT) and (settings.LOG_DIR):
        handlers["file"] = get_file_handler(settings)
        handlers["error_file"] = get_error_file_handler(settings)
    else:
        handlers["error_console"] = get_error_console_handler(settings)

    azure_level = "DEBUG" if getattr(settings, "ENABLE_AZURE_HTTP_LOGGING", False) else "WARNING"

    loggers: dict[str, dict] = {
        "": {
            "handlers": list(handlers.keys()),
            "level": settings.LOG_LEVEL,
            "propagate": True,
        },
    }
    for name in _AZURE_LOGGERS:
        # Request/response logging may contain SAS tokens in URLs; keep it off by default.
        loggers[name] = {
            "level": azure_level,
            "handlers": ["console"],
            "propagate": False,
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": filters,
        "handlers": handlers,
        "loggers": loggers,
    }


# --------------------------
# Entrypoint: setup & optional queue wiring
# --------------------------
def setup_logging(settings: Settings) -> None:
    """
    Initialize logging using settings and optionally switch to queue-backed logging.

    Steps:
      1. Ensure LOG_DIR exists when writing files.
      2. Apply dictConfig(make_dict_config(settings)).
      3. Register a CorrelationIdFilter on the root logger as a safety net.
      4. If settings.LOG_USE_QUEUE:
            - create a (bounded or unbounded) queue
            - detach the real handlers from every logger
            - run them in a QueueListener background thread
            - attach a QueueHandler (or NonBlockingQueueHandler) to the root logger,
              with the producer-side filters
    """
    global _QUEUE_LISTENER, _QUEUE

    if (not settings.LOG_TO_STDOUT) and (settings.LOG_DIR):
        Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(make_dict_config(settings))

    # Keeps %(correlation_id)s safe for handlers added outside dictConfig.
    logging.getLogger().addFilter(CorrelationIdFilter())

    if not getattr(settings, "LOG_USE_QUEUE", False):
        return

    max_size = getattr(settings, "LOG_QUEUE_MAX_SIZE", 0) or 0
    blocking = bool(getattr(settings, "LOG_QUEUE_BLOCKING", False))
    drop_warn_threshold = int(getattr(settings, "LOG_QUEUE_DROP_WARNING_THRESHOLD", 100))

    root_logger = logging.getLogger()
    current_handlers = list(root_logger.handlers)
    if not current_handlers:
        return

    handlers_to_move = set(current_handlers)

    # Remove the real handler instances from all named loggers so they only run in the listener thread.
    for logger_obj in list(logging.Logger.manager.loggerDict.values()):
        if isinstance(logger_obj, logging.Logger):
            for h in list(logger_obj.handlers):
                if h in handlers_to_move:
                    logger_obj.removeHandler(h)

    for h in list(root_logger.handlers):
        if h in handlers_to_move:
            root_logger.removeHandler(h)

    log_queue: _queue.Queue = _queue.Queue(max_size) if max_size > 0 else _queue.Queue()

    if max_size > 0 and not blocking:
        queue_handler_cls = NonBlockingQueueHandler
    else:
        queue_handler_cls = QueueHandler  # type: ignore[assignment]

    listener = QueueListener(log_queue, *current_handlers, respect_handler_level=True)
    listener.start()

    qh = queue_handler_cls(log_queue)

    # Producer-side filters: contextvars are only visible in the producing context.
    qh.addFilter(CorrelationIdFilter())
    qh.addFilter(RedactFilter())

    root_logger.addHandler(qh)

    _QUEUE_LISTENER = listener
    _QUEUE = log_queue

    if queue_handler_cls is NonBlockingQueueHandler and drop_warn_threshold > 0:
        with _DROPPED_LOGS_LOCK:
            dropped = _DROPPED_LOGS_COUNT
        if dropped and dropped % drop_warn_threshold == 0:
            logging.getLogger(__name__).warning(
                "Dropped %d log records because queue was full", dropped
            )


def stop_queue_logging() -> None:
    """
    Stop the QueueListener (flushing queued records) and clear module refs.
    """
    global _QUEUE_LISTENER, _QUEUE
    listener = _QUEUE_LISTENER
    if listener is None:
        return

    try:
        listener.stop()
    finally:
        _QUEUE_LISTENER = None
        _QUEUE = None
