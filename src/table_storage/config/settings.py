from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field, field_validator
from pathlib import Path
from typing import Literal
from functools import lru_cache
from ..validators.config_validators import to_uppercase, to_lowercase, validate_table_name


class Settings(BaseSettings):
    """
    Application settings loaded from environment.
    """

    # Environment
    ENV: Literal["development", "testing", "staging", "production"] = "development"

    # Table storage configuration
    # The original deployments exported AZURE_STORAGE_CONNECTION_STRING, so both names are accepted.
    TABLE_STORAGE_CONNECTION_STRING: str = Field(
        validation_alias=AliasChoices(
            "TABLE_STORAGE_CONNECTION_STRING",
            "AZURE_STORAGE_CONNECTION_STRING",
        )
    )
    TABLE_STORAGE_TABLE_NAME: str
    TABLE_STORAGE_ALLOW_INSECURE_CONNECTION: bool = False
    TABLE_STORAGE_CREATE_TABLE_IF_NOT_EXISTS: bool = False

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"
    LOG_TO_STDOUT: bool = True
    LOG_DIR: Path = Path("/var/log/table-storage")
    LOG_MAX_BYTES: int = 10_000_000  # 10 MB
    LOG_BACKUP_COUNT: int = 5
    ENABLE_AZURE_HTTP_LOGGING: bool = False

    # Queue-backed logging
    LOG_USE_QUEUE: bool = False
    LOG_QUEUE_MAX_SIZE: int = 0
    LOG_QUEUE_BLOCKING: bool = False
    LOG_QUEUE_DROP_WARNING_THRESHOLD: int = 100

    # --- Validators ---
    @field_validator("LOG_LEVEL", mode="before")
    def normalize_log_level(cls, v: str | None) -> str | None:
        """
        Normalize the LOG_LEVEL environment variable value to uppercase.

        Runs before the Literal check (mode="before") so "debug" and "DEBUG" are both accepted.
        """
        return to_uppercase(v)

    @field_validator("LOG_FORMAT", mode="before")
    def normalize_log_format(cls, v: str | None) -> str | None:
        """
        Normalize the LOG_FORMAT environment variable value to lowercase.
        """
        return to_lowercase(v)

    @field_validator("TABLE_STORAGE_TABLE_NAME")
    def check_table_name(cls, v: str) -> str:
        """
        Reject table names the service would refuse anyway (3-63 alphanumerics, leading letter).

        Failing here keeps a misconfigured deployment from starting instead of failing
        on the first write.
        """
        return validate_table_name(v)

    # --- Config ---
    model_config = SettingsConfigDict(
        # Load environment variables from the .env file located two levels up relative to this file.
        env_file=str(Path(__file__).parent.parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


# get_settings() takes no arguments and always returns the same settings from the environment,
# so caching it with @lru_cache() avoids re-reading the environment on every call.
@lru_cache()
def get_settings() -> Settings:
    return Settings()
