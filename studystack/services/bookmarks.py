"""Bookmark rows and the denormalized ``Resource.bookmarks`` counter.

Every operation here changes the bookmark row and the counter inside one
transaction, with the resource row locked for the duration, so concurrent
toggles by the same user cannot push the counter out of step with the rows.
"""

import logging
from dataclasses import dataclass
from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from studystack.core.errors import duplicate_field, not_found, permission_denied
from studystack.models.bookmark import Bookmark
from studystack.models.resource import Resource
from studystack.models.user import User
from studystack.services.catalog import can_view

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookmarkState:
    bookmarked: bool
    bookmarks: int
    bookmark: Bookmark | None = None


def _lock_visible_resource(db: Session, user: User, resource_id: str) -> Resource:
    r = db.query(Resource).filter(Resource.id == resource_id).with_for_update(of=Resource).first()
    if not r:
        raise not_found()
    if not can_view(user, r):
        raise permission_denied("Access denied to private resource")
    return r


def _adjust_counter(db: Session, resource_id: str, delta: int) -> None:
    if delta > 0:
        value = Resource.bookmarks + 1
    else:
        value = case((Resource.bookmarks > 0, Resource.bookmarks - 1), else_=0)
    db.execute(
        update(Resource)
        .where(Resource.id == resource_id)
        .values(bookmarks=value)
        .execution_options(synchronize_session=False)
    )


def _find(db: Session, user_id: str, resource_id: str) -> Bookmark | None:
    return db.query(Bookmark).filter(Bookmark.user_id == user_id, Bookmark.resource_id == resource_id).first()


def _commit_and_count(db: Session, r: Resource) -> int:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise duplicate_field("Resource already bookmarked")
    db.refresh(r)
    return r.bookmarks


def add_bookmark(db: Session, user: User, resource_id: str, category: str = "general") -> BookmarkState:
    r = _lock_visible_resource(db, user, resource_id)
    if _find(db, user.id, resource_id):
        raise duplicate_field("Resource already bookmarked")
    b = Bookmark(user_id=user.id, resource_id=resource_id, category=category or "general")
    db.add(b)
    db.flush()
    _adjust_counter(db, resource_id, +1)
    count = _commit_and_count(db, r)
    return BookmarkState(bookmarked=True, bookmarks=count, bookmark=b)


def remove_bookmark(db: Session, user: User, bookmark_id: str) -> BookmarkState:
    b = db.query(Bookmark).filter(Bookmark.id == bookmark_id, Bookmark.user_id == user.id).first()
    if not b:
        raise not_found("Bookmark not found")
    r = db.query(Resource).filter(Resource.id == b.resource_id).with_for_update(of=Resource).one()
    db.delete(b)
    db.flush()
    _adjust_counter(db, r.id, -1)
    count = _commit_and_count(db, r)
    return BookmarkState(bookmarked=False, bookmarks=count)


def toggle_bookmark(db: Session, user: User, resource_id: str) -> BookmarkState:
    r = _lock_visible_resource(db, user, resource_id)
    existing = _find(db, user.id, resource_id)
    if existing:
        db.delete(existing)
        db.flush()
        _adjust_counter(db, resource_id, -1)
        created = None
    else:
        created = Bookmark(user_id=user.id, resource_id=resource_id)
        db.add(created)
        db.flush()
        _adjust_counter(db, resource_id, +1)
    count = _commit_and_count(db, r)
    logger.info("Bookmark toggled user=%s resource=%s bookmarked=%s", user.id, resource_id, created is not None)
    return BookmarkState(bookmarked=created is not None, bookmarks=count, bookmark=created)
