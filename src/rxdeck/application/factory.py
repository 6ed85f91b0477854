"""
Card Store Factory
Centralizes the logic for opening the configured card store.
"""

import logging

from rxdeck.application.config import AppConfig
from rxdeck.infrastructure.store.sqlite_store import SqliteCardStore

logger = logging.getLogger(__name__)


def open_store(config: AppConfig) -> SqliteCardStore:
    """
    Returns an open CardStore for config.db_path.
    The caller owns the handle and must close it (or use it as a context manager).
    """
    logger.debug(f"Opening card store at {config.db_path}")
    return SqliteCardStore(config.db_path)
