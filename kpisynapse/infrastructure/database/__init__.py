# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure: async engine, sessions and models."""

from kpisynapse.infrastructure.database.connection import (
    DatabaseError,
    check_database_connection,
    close_database,
    create_database_engine,
    create_sessionmaker,
    create_tables,
    get_session,
    get_sessionmaker,
    init_database,
)

__all__ = [
    "DatabaseError",
    "check_database_connection",
    "close_database",
    "create_database_engine",
    "create_sessionmaker",
    "create_tables",
    "get_session",
    "get_sessionmaker",
    "init_database",
]
