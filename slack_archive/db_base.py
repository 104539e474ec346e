"""SQLAlchemy declarative base and session factory."""

import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def get_session_factory(database_url: Optional[str] = None, create_tables: bool = False) -> sessionmaker:
    """
    Build a session factory for DATABASE_URL.

    Raises:
        ValueError: If no database URL is configured
    """
    database_url = database_url or os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is required")

    engine = create_engine(database_url, pool_pre_ping=True)
    if create_tables:
        # Import models to register them with Base
        import slack_archive.models  # noqa: F401

        Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
