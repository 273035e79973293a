"""Persistence primitives for the BOQ import service."""

from persistence.database import (
    DB_URL_ENV_VAR,
    DEFAULT_DB_FILENAME,
    DEFAULT_DB_PATH,
    build_session_factory,
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    init_db,
)
from persistence.models import (
    AuditEvent,
    Base,
    BOQExpenseLink,
    BOQItem,
    BOQSection,
    CategoryItem,
    Expense,
    Project,
    Stage,
)

__all__ = [
    "AuditEvent",
    "Base",
    "BOQExpenseLink",
    "BOQItem",
    "BOQSection",
    "CategoryItem",
    "DB_URL_ENV_VAR",
    "DEFAULT_DB_FILENAME",
    "DEFAULT_DB_PATH",
    "Expense",
    "Project",
    "Stage",
    "build_session_factory",
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "init_db",
]
