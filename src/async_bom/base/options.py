# src/async_bom/base/options.py
"""
Construction options for the query builder.

Each ``set_*`` function returns an option callable which `Bom.new` applies to
a freshly defaulted instance, in order. Options may raise
ConfigurationException to abort construction.
"""

from typing import TYPE_CHECKING, Any, Callable

from .exceptions import ConfigurationException

if TYPE_CHECKING:
    from async_bom.db_implementations.mongodb_bom import Bom

DEFAULT_QUERY_TIMEOUT = 5.0  # seconds
DEFAULT_SIZE = 20

Option = Callable[["Bom"], None]


def set_mongo_client(client: Any) -> Option:
    def option(bom: "Bom") -> None:
        bom._client = client

    return option


def set_database_name(database_name: str) -> Option:
    def option(bom: "Bom") -> None:
        bom._database_name = database_name

    return option


def set_collection(collection_name: str) -> Option:
    def option(bom: "Bom") -> None:
        bom._collection_name = collection_name

    return option


def set_query_timeout(seconds: float) -> Option:
    def option(bom: "Bom") -> None:
        if seconds <= 0:
            raise ConfigurationException(
                f"Query timeout must be positive, got {seconds!r}"
            )
        bom._query_timeout = seconds

    return option


def set_default_size(size: int) -> Option:
    """Default page size used when a limit carries no positive size."""

    def option(bom: "Bom") -> None:
        if size <= 0:
            raise ConfigurationException(
                f"Default page size must be positive, got {size!r}"
            )
        bom._default_size = size
        bom._pagination.size = size

    return option
