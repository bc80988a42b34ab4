from collections.abc import Iterable
from sqlalchemy.orm import Session
from studystack.core.errors import validation_error
from studystack.models.resource import Resource, Tag, resource_tags

MAX_TAGS = 5
MAX_TAG_LENGTH = 30


def normalize_tags(raw: str | Iterable[str] | None) -> list[str]:
    """Lowercase, trim and de-duplicate tag names; a string is split on commas."""
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else list(raw)
    names: list[str] = []
    for item in items:
        name = str(item).strip().lower()
        if not name or name in names:
            continue
        if len(name) > MAX_TAG_LENGTH:
            raise validation_error(f"Each tag must be between 1 and {MAX_TAG_LENGTH} characters", {"tag": name})
        names.append(name)
    if len(names) > MAX_TAGS:
        raise validation_error(f"Maximum {MAX_TAGS} tags allowed")
    return names


def upsert_tags(db: Session, names: list[str]) -> list[Tag]:
    tags = []
    for name in names:
        tag = db.query(Tag).filter(Tag.name == name).first()
        if not tag:
            tag = Tag(name=name)
            db.add(tag)
            db.flush()
        tags.append(tag)
    return tags


def attach_tags(db: Session, resource: Resource, names: list[str]) -> None:
    for tag in upsert_tags(db, names):
        db.execute(resource_tags.insert().values(resource_id=resource.id, tag_id=tag.id))
    db.expire(resource, ["tags"])


def replace_tags(db: Session, resource: Resource, names: list[str]) -> None:
    # TODO: diff against the current set instead of delete-all/re-insert
    db.execute(resource_tags.delete().where(resource_tags.c.resource_id == resource.id))
    attach_tags(db, resource, names)
