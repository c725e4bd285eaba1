# src/async_bom/__init__.py

"""
Async BOM Library Initialization.

This package provides a fluent, asynchronous query builder over a single
MongoDB collection (Motor driver).

It initializes a logger with a NullHandler and makes the query builder, its
directive types, construction options, identifier helpers and exceptions
available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for the "async_bom" logger.
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Exception Exports
# --------------------------------------------------------------------------
from .base.exceptions import (BomException, ConfigurationException,
                              InvalidObjectIdException)

# --------------------------------------------------------------------------
# Query Building Exports
# --------------------------------------------------------------------------
from .base.query import (Combinator, Fragment, Limit, Pagination,
                         ResolvedQuery, Sort)
from .base.options import (DEFAULT_QUERY_TIMEOUT, DEFAULT_SIZE,
                           set_collection, set_database_name,
                           set_default_size, set_mongo_client,
                           set_query_timeout)
from .base.utils import (NIL_OBJECT_ID, parse_object_id, to_object_id,
                         to_object_ids)

# --------------------------------------------------------------------------
# Implementation Exports
# --------------------------------------------------------------------------
from .db_implementations.mongodb_bom import Bom

__all__ = [
    # Builder
    "Bom",
    # Exceptions
    "BomException",
    "ConfigurationException",
    "InvalidObjectIdException",
    # Query types
    "Combinator",
    "Fragment",
    "Limit",
    "Pagination",
    "ResolvedQuery",
    "Sort",
    # Options
    "DEFAULT_QUERY_TIMEOUT",
    "DEFAULT_SIZE",
    "set_mongo_client",
    "set_database_name",
    "set_collection",
    "set_query_timeout",
    "set_default_size",
    # Identifiers
    "NIL_OBJECT_ID",
    "parse_object_id",
    "to_object_id",
    "to_object_ids",
    # Logging
    "logger",
]

__version__ = "0.1.0"
