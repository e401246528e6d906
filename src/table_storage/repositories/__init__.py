"""
Repository layer.

Usage:
    from table_storage.repositories import TableRepository, RepositoryOptions
"""

from .table_repository import RepositoryOptions, TableRepository

__all__ = [
    "RepositoryOptions",
    "TableRepository",
]
