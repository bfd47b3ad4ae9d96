"""
Database module for the Claim Lifecycle Core.

Exports database connection utilities.
"""

from src.db.connection import (
    check_db_connection,
    close_db_connection,
    create_engine_for_url,
    create_session_maker,
    get_engine,
    get_session_maker,
    init_db,
)

__all__ = [
    "check_db_connection",
    "close_db_connection",
    "create_engine_for_url",
    "create_session_maker",
    "get_engine",
    "get_session_maker",
    "init_db",
]
