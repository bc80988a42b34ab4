import logging
from sqlalchemy.engine import Engine
from studystack.db.base import Base
import studystack.models  # noqa: F401 - register tables

logger = logging.getLogger(__name__)


def run_migrations_safely(engine: Engine):
    """
    Lightweight schema bootstrap:
    - create_all creates missing tables and never drops existing data
    """
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Auto migration completed")
    except Exception as e:
        logger.exception("Auto migration failed: %s", e)
        raise
