"""
Database initialization script.

Creates all tables defined in the SQLAlchemy models.

Usage:
    python scripts/init_db.py

Environment variables:
    DATABASE_URL: PostgreSQL connection string
"""

import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from shopsync.database.session import get_engine
from shopsync.db_base import Base
# Import all models to register them with Base.metadata
from shopsync import models  # noqa: F401

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init_db() -> None:
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created", extra={"tables": sorted(Base.metadata.tables)})


def main():
    try:
        init_db()
    except (SQLAlchemyError, ValueError) as e:
        logger.error(f"Database initialization failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
