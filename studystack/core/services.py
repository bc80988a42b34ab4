import logging
from dataclasses import dataclass
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from studystack.core.config import Settings
from studystack.core.identity import IdentityProvider
from studystack.core.storage import BlobStore, build_blob_store
from studystack.db.session import build_engine, build_session_factory

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """Process-wide clients, built once at startup and closed on shutdown."""

    engine: Engine
    session_factory: sessionmaker[Session]
    blob_store: BlobStore
    identity: IdentityProvider

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppServices":
        engine = build_engine(settings.DATABASE_URL)
        return cls(
            engine=engine,
            session_factory=build_session_factory(engine),
            blob_store=build_blob_store(settings),
            identity=IdentityProvider.from_settings(settings),
        )

    def close(self) -> None:
        self.identity.close()
        self.blob_store.close()
        self.engine.dispose()
        logger.info("Application services closed")
