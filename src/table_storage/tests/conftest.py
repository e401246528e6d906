"""
Core pytest configuration for the entire test suite.

Only suite-wide setup lives here: quiet third-party loggers, install the
package's logging configuration once per session, and register shared fixtures.

Domain-specific fixtures are located in:
- tests/test_fixtures/repository_fixtures.py   (repositories over the in-memory store)
- tests/test_fixtures/memory_backend.py         (the in-memory store itself)
"""

from __future__ import annotations

# -------------------------------
# Standard library imports
# -------------------------------
import logging

# -------------------------------
# Early logging tuning (IMPORTANT)
# -------------------------------
# Keep this block above the project imports so collection stays quiet.
NOISY_LOGGERS = (
    "faker",
    "faker.factory",
    "azure",
    "azure.core.pipeline.policies.http_logging_policy",
    "asyncio",
    "aiohttp",
    "urllib3",
)
for _name in NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(logging.WARNING)

# -------------------------------
# Third-party / project imports
# -------------------------------
import pytest
from pytest import FixtureRequest

from table_storage.core.logging.builder import setup_logging

from .test_fixtures.settings_fixtures import make_test_settings


def _reattach_caplog_handler(request: FixtureRequest) -> None:
    # dictConfig replaces root handlers; put pytest's capture handler back if there is one.
    caplog_plugin = request.config.pluginmanager.getplugin("logging-plugin")
    handler = getattr(caplog_plugin, "caplog_handler", None)
    if handler is not None:
        logging.getLogger().addHandler(handler)


# The `autouse=True` part means pytest uses this fixture without it being requested.
@pytest.fixture(scope="session", autouse=True)
def configure_logging(request: FixtureRequest):
    """
    Install the package logging configuration for the whole test session.

    Same formatters and filters as a deployed process (correlation id, redaction),
    text format on the console so failures are readable.
    """
    setup_logging(make_test_settings())
    _reattach_caplog_handler(request)
    yield


# Repository test fixtures
from .test_fixtures.repository_fixtures import (  # noqa: E402
    faker_instance,
    memory_service,
    connection_manager,
    dict_repo,
    model_repo,
    provisioning_repo,
    sample_entity_data,
    create_entity,
    created_entity,
    multiple_entities,
)
