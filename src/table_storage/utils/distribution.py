"""Installed-distribution facts stamped onto JSON log lines."""

from importlib import metadata as importlib_metadata

DISTRIBUTION_NAME = "table-storage-repository"


def get_project_version(default: str = "unknown") -> str:
    """Version of the installed distribution, or `default` when it is not installed."""
    try:
        return importlib_metadata.version(DISTRIBUTION_NAME)
    except importlib_metadata.PackageNotFoundError:
        return default


__all__ = ["DISTRIBUTION_NAME", "get_project_version"]
