# src/table_storage/tests/test_logging/test_builder_setup.py
import logging

from table_storage.core.logging.builder import make_dict_config, setup_logging

from ..test_fixtures.settings_fixtures import make_test_settings


def test_make_dict_config_contains_file_handlers(tmp_path):
    settings = make_test_settings(LOG_FORMAT="json", LOG_TO_STDOUT=False, LOG_DIR=tmp_path)
    cfg = make_dict_config(settings)

    assert "console" in cfg["handlers"]
    # writing to a directory: file handlers instead of the error console
    assert "file" in cfg["handlers"]
    assert "error_file" in cfg["handlers"]
    assert "error_console" not in cfg["handlers"]
    assert "json" in cfg["formatters"]
    assert set(cfg["filters"]) == {"correlation_id", "redact"}


def test_make_dict_config_stdout_only():
    cfg = make_dict_config(make_test_settings())

    assert set(cfg["handlers"]) == {"console", "error_console"}


def test_azure_loggers_quiet_by_default():
    cfg = make_dict_config(make_test_settings())

    assert cfg["loggers"]["azure"]["level"] == "WARNING"


def test_azure_http_logging_switch():
    cfg = make_dict_config(make_test_settings(ENABLE_AZURE_HTTP_LOGGING=True))

    assert cfg["loggers"]["azure"]["level"] == "DEBUG"
    assert cfg["loggers"]["azure.core.pipeline.policies.http_logging_policy"]["level"] == "DEBUG"


def test_setup_logging_creates_log_dir(tmp_path):
    settings = make_test_settings(LOG_TO_STDOUT=False, LOG_DIR=tmp_path / "logs")
    # ensure DIR does not exist
    assert not settings.LOG_DIR.exists()
    try:
        setup_logging(settings)
        # setup should create log dir
        assert settings.LOG_DIR.exists()
        assert logging.getLogger().handlers
    finally:
        setup_logging(make_test_settings())
