import logging
import time
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from studystack.core.config import get_settings
from studystack.core.logging import setup_logging
from studystack.db.auto_migrate import run_migrations_safely
from studystack.db.session import build_engine, build_session_factory
from studystack.models.resource import Resource, LINK, PYQ
from studystack.models.user import User, CONTRIBUTOR
from studystack.services.tags import attach_tags

logger = logging.getLogger(__name__)

DEMO_EXTERNAL_ID = "demo_contributor"

DEMO_RESOURCES = [
    {
        "title": "Data Structures cheat sheet",
        "description": "Big-O summary for arrays, lists, trees, heaps and hash tables.",
        "subject": "computer-science",
        "resource_type": LINK,
        "semester": "3",
        "url": "https://example.org/ds-cheatsheet",
        "tags": ["algorithms", "revision"],
    },
    {
        "title": "Engineering Mathematics II question paper",
        "description": "End-semester examination paper with the marking scheme.",
        "subject": "mathematics",
        "resource_type": PYQ,
        "semester": "2",
        "year": 2023,
        "file_name": "maths-ii-2023.pdf",
        "mime_type": "application/pdf",
        "tags": ["pyq", "calculus"],
    },
]


def seed(db: Session):
    """Insert a demo contributor and sample resources, skipping titles that already exist."""
    owner = db.query(User).filter(User.external_id == DEMO_EXTERNAL_ID).first()
    if not owner:
        owner = User(
            external_id=DEMO_EXTERNAL_ID,
            email="contributor@studystack.local",
            name="Demo Contributor",
            role=CONTRIBUTOR,
            institution="StudyStack",
            is_verified=True,
        )
        db.add(owner)
        db.flush()

    for item in DEMO_RESOURCES:
        if db.query(Resource).filter(Resource.title == item["title"]).first():
            continue
        fields = {k: v for k, v in item.items() if k != "tags"}
        if item.get("file_name"):
            fields["file_path"] = f"{owner.id}/{item['file_name']}"
        r = Resource(**fields, is_external=item["resource_type"] == LINK, uploader_id=owner.id)
        db.add(r)
        db.flush()
        attach_tags(db, r, item["tags"])
        logger.info("Seeded resource %s", r.title)
    db.commit()


def wait_for_db(engine: Engine, max_retries: int = 30, delay_seconds: int = 2):
    """Loop until the DB is reachable so container start does not flap while Postgres boots."""
    for attempt in range(1, max_retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
                return
        except OperationalError:
            if attempt == max_retries:
                raise
            logger.info("Database not ready (attempt %s/%s)", attempt, max_retries)
            time.sleep(delay_seconds)


def main():
    settings = get_settings()
    setup_logging(settings)
    engine = build_engine(settings.DATABASE_URL)
    try:
        wait_for_db(engine)
        run_migrations_safely(engine)
        db = build_session_factory(engine)()
        try:
            seed(db)
        finally:
            db.close()
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
