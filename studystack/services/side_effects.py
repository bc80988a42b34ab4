"""Best-effort writes that must never fail the request that triggered them."""

import logging
from dataclasses import dataclass
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from studystack.core.storage import BlobStore, StorageError
from studystack.models.activity import Activity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SideEffectOutcome:
    ok: bool
    error: str | None = None


def record_activity(db: Session, user_id: str, resource_id: str, action: str) -> SideEffectOutcome:
    """Append an activity row in its own commit.

    Call only after the primary change is committed: a failure here rolls back
    the session.
    """
    try:
        db.add(Activity(user_id=user_id, resource_id=resource_id, action=action))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Activity not recorded user=%s resource=%s action=%s: %s", user_id, resource_id, action, e)
        return SideEffectOutcome(ok=False, error=str(e))
    return SideEffectOutcome(ok=True)


def delete_blob(blob_store: BlobStore, path: str) -> SideEffectOutcome:
    try:
        blob_store.delete(path)
    except (StorageError, OSError) as e:
        logger.warning("Stored file not removed path=%s: %s", path, e)
        return SideEffectOutcome(ok=False, error=str(e))
    return SideEffectOutcome(ok=True)
