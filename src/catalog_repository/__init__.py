# src/catalog_repository/__init__.py

"""
Catalog Repository Library Initialization.

This package provides an asynchronous, SQLite-backed repository for a media
catalog: filtered and paginated queries, partial updates that tell "absent"
from "null", cover image storage and transaction scoping.

It initializes a logger with a NullHandler and makes the core components
available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging (or calls configure_logging).
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False  # Prevent log messages from propagating to the root logger

# --------------------------------------------------------------------------
# Core Interface and Exception Exports
# --------------------------------------------------------------------------
from .base.interfaces import CatalogRepository
from .base.exceptions import (
    ConfigurationError,
    ConsistencyWarning,
    KeyAlreadyExistsError,
    NotFoundError,
    RepositoryError,
    StorageError,
)

# --------------------------------------------------------------------------
# Query Building Exports
# --------------------------------------------------------------------------
from .base.assembler import FindFilter, SortDirection
from .base.criteria import CriterionModifier, MultiCriterion
from .base.query import QueryOperator

# --------------------------------------------------------------------------
# Update Building Exports
# --------------------------------------------------------------------------
from .base.changeset import ABSENT, ChangesetTranslator, Patch
from .base.update import Update
from .base.transaction import TransactionCoordinator

# --------------------------------------------------------------------------
# Repository Implementation Exports
# --------------------------------------------------------------------------
from .config import CatalogSettings, get_settings
from .db_implementations.sqlite_repository import SqliteRepository
from .db_implementations.movie_repository import MovieRepository
from .models.movie import (
    DEFAULT_MOVIE_IMAGE,
    Movie,
    MovieCreateInput,
    MovieDestroyInput,
    MovieFilter,
    MovieSlim,
    MovieUpdateInput,
)
from .services.movie_service import MovieService
from .sqlite.extensions import connect
from .sqlite.schema import check_schema, create_schema


def configure_logging(settings=None, handler=None):
    """
    Route the package's logs to ``handler`` (a StreamHandler by default) at
    the level configured in ``CatalogSettings.log_level``.
    """
    settings = settings or get_settings()
    logger.setLevel(settings.log_level)
    if handler is None:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    logger.addHandler(handler)
    return handler


# --------------------------------------------------------------------------
# __all__ Definition
# --------------------------------------------------------------------------
__all__ = [
    # Core
    "CatalogRepository",
    "TransactionCoordinator",
    # Exceptions
    "RepositoryError",
    "NotFoundError",
    "ConfigurationError",
    "StorageError",
    "KeyAlreadyExistsError",
    "ConsistencyWarning",
    # Query
    "FindFilter",
    "SortDirection",
    "MultiCriterion",
    "CriterionModifier",
    "QueryOperator",
    # Update
    "ABSENT",
    "Patch",
    "ChangesetTranslator",
    "Update",
    # Implementations
    "SqliteRepository",
    "MovieRepository",
    "MovieService",
    # Models
    "Movie",
    "MovieSlim",
    "MovieFilter",
    "MovieCreateInput",
    "MovieUpdateInput",
    "MovieDestroyInput",
    "DEFAULT_MOVIE_IMAGE",
    # SQLite helpers
    "connect",
    "create_schema",
    "check_schema",
    # Settings / logging
    "CatalogSettings",
    "get_settings",
    "configure_logging",
    "logger",
]
