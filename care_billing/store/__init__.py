"""Backing store: SQLAlchemy tables, session factory and repository queries."""
from care_billing.store.database import get_db, init_db, make_engine, make_session_factory
from care_billing.store.tables import Base

__all__ = ["Base", "get_db", "init_db", "make_engine", "make_session_factory"]
