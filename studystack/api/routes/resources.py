import logging
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import exists, func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from studystack.api.deps import get_app_settings, get_blob_store, get_current_user, get_db, get_optional_user
from studystack.api.serializers import resource_detail, resource_summary
from studystack.core.config import Settings
from studystack.core.errors import AppError, not_found, permission_denied, validation_error
from studystack.core.rbac import require_resource_owner, require_roles
from studystack.core.response import created, ok, page_meta
from studystack.core.storage import BlobStore, FileTooLargeError, StorageError, make_object_key, safe_key
from studystack.models.activity import BOOKMARK, DOWNLOAD, UPLOAD, VIEW
from studystack.models.bookmark import Bookmark
from studystack.models.resource import Resource, Tag, resource_tags, LINK
from studystack.models.user import User, ADMIN, CONTRIBUTOR
from studystack.schemas.resource import ResourceUpdateIn
from studystack.services.bookmarks import toggle_bookmark
from studystack.services.catalog import (
    ALLOWED_UPLOAD_MIMES,
    SORT_KEYS,
    can_view,
    check_type_invariants,
    check_year,
    normalize_resource_type,
)
from studystack.services.side_effects import delete_blob, record_activity
from studystack.services.tags import attach_tags, normalize_tags, replace_tags

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/resources", tags=["resources"])

MAX_PAGE_SIZE = 50
LIKE_ESCAPE = "\\"

_contact_email = TypeAdapter(EmailStr)


def _get_or_404(db: Session, rid: str) -> Resource:
    r = db.query(Resource).filter(Resource.id == rid).first()
    if not r:
        raise not_found()
    return r


def _is_bookmarked(db: Session, user: User | None, rid: str) -> bool:
    if not user:
        return False
    return db.query(Bookmark.id).filter(Bookmark.user_id == user.id, Bookmark.resource_id == rid).first() is not None


def _increment(db: Session, r: Resource, **columns: int) -> None:
    values = {name: getattr(Resource, name) + step for name, step in columns.items()}
    db.execute(
        update(Resource).where(Resource.id == r.id).values(**values).execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(r)


def _checked_contact_email(value: str) -> str:
    try:
        return _contact_email.validate_python(value.strip()).lower()
    except ValidationError:
        raise validation_error("Invalid contact email")


def _owned_path(user: User, file_path: str) -> str:
    """A caller-supplied object key must sit under the caller's own prefix."""
    try:
        key = safe_key(file_path)
    except StorageError:
        raise validation_error("Invalid file path")
    if not key.startswith(f"{user.id}/"):
        raise validation_error("File path must be inside your own upload folder.")
    return key


def _path_shared(db: Session, r: Resource) -> bool:
    return (
        db.query(Resource.id).filter(Resource.file_path == r.file_path, Resource.id != r.id).first() is not None
    )


def _like_pattern(search: str) -> str:
    term = search.strip()
    for ch in (LIKE_ESCAPE, "%", "_"):
        term = term.replace(ch, LIKE_ESCAPE + ch)
    return f"%{term}%"


def _order_by(sort_by: str):
    if sort_by == "oldest":
        return [Resource.created_at.asc(), Resource.id.asc()]
    if sort_by == "popular":
        return [Resource.views.desc(), Resource.created_at.desc(), Resource.id.asc()]
    if sort_by == "downloads":
        return [Resource.downloads.desc(), Resource.created_at.desc(), Resource.id.asc()]
    if sort_by == "title":
        return [Resource.title.asc(), Resource.id.asc()]
    return [Resource.created_at.desc(), Resource.id.asc()]


@router.get("")
def list_resources(
    request: Request,
    db: Session = Depends(get_db),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    subject: str | None = None,
    resource_type: str | None = Query(default=None, alias="resourceType"),
    semester: str | None = None,
    year: int | None = None,
    search: str | None = None,
    sort_by: str = Query(default="newest", alias="sortBy"),
):
    if sort_by not in SORT_KEYS:
        raise validation_error("Invalid sort option", {"allowed": list(SORT_KEYS)})

    q = db.query(Resource).filter(Resource.is_private == False)  # noqa: E712
    if subject and subject.strip():
        q = q.filter(func.lower(Resource.subject) == subject.strip().lower())
    if resource_type:
        q = q.filter(Resource.resource_type == normalize_resource_type(resource_type))
    if semester and semester.strip():
        q = q.filter(func.lower(Resource.semester) == semester.strip().lower())
    if year is not None:
        q = q.filter(Resource.year == year)
    if search and search.strip():
        like = _like_pattern(search)
        tag_match = exists().where(
            resource_tags.c.resource_id == Resource.id,
            resource_tags.c.tag_id == Tag.id,
            Tag.name.ilike(like, escape=LIKE_ESCAPE),
        )
        q = q.filter(
            or_(
                Resource.title.ilike(like, escape=LIKE_ESCAPE),
                Resource.description.ilike(like, escape=LIKE_ESCAPE),
                tag_match,
            )
        )

    total = q.count()
    rows = q.order_by(*_order_by(sort_by)).offset((page - 1) * limit).limit(limit).all()
    return ok(
        request,
        {"resources": [resource_summary(r) for r in rows], "pagination": page_meta(page, limit, total)},
    )


@router.get("/my/resources")
def my_resources(
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
):
    q = db.query(Resource).filter(Resource.uploader_id == user.id)
    total = q.count()
    rows = (
        q.order_by(Resource.created_at.desc(), Resource.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return ok(
        request,
        {"resources": [resource_summary(r) for r in rows], "pagination": page_meta(page, limit, total)},
    )


@router.get("/tags")
def popular_tags(request: Request, db: Session = Depends(get_db), limit: int = Query(default=20, ge=1, le=100)):
    """Tag cloud over public resources, most used first."""
    count = func.count(Resource.id)
    rows = (
        db.query(Tag.name, count)
        .join(resource_tags, resource_tags.c.tag_id == Tag.id)
        .join(Resource, Resource.id == resource_tags.c.resource_id)
        .filter(Resource.is_private == False)  # noqa: E712
        .group_by(Tag.id, Tag.name)
        .order_by(count.desc(), Tag.name.asc())
        .limit(limit)
        .all()
    )
    return ok(request, {"tags": [{"name": name, "count": int(cnt)} for name, cnt in rows]})


@router.post("")
def create_resource(
    request: Request,
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    user: User = Depends(require_roles(CONTRIBUTOR, ADMIN)),
    title: str | None = Form(default=None, max_length=200),
    description: str | None = Form(default=None),
    subject: str | None = Form(default=None, max_length=100),
    resource_type: str | None = Form(default=None, alias="resourceType", max_length=20),
    semester: str | None = Form(default=None, max_length=50),
    year: int | None = Form(default=None),
    is_private: bool = Form(default=False, alias="isPrivate"),
    allow_contact: bool = Form(default=True, alias="allowContact"),
    tags: str | None = Form(default=None, max_length=500),
    url: str | None = Form(default=None, max_length=2000),
    file_path: str | None = Form(default=None, alias="filePath", max_length=500),
    file_name: str | None = Form(default=None, alias="fileName", max_length=255),
    file_size: int | None = Form(default=None, alias="fileSize"),
    mime_type: str | None = Form(default=None, alias="mimeType", max_length=150),
    phone: str | None = Form(default=None, max_length=30),
    contact_email: str | None = Form(default=None, alias="contactEmail", max_length=255),
    file: UploadFile | None = File(default=None),
):
    required = {"title": title, "description": description, "subject": subject, "resourceType": resource_type}
    missing = [name for name, value in required.items() if not (value and value.strip())]
    if missing:
        raise validation_error("Missing required fields.", {"fields": missing})

    rt = normalize_resource_type(resource_type)
    url = (url or "").strip() or None
    file_path = (file_path or "").strip() or None
    has_upload = file is not None and bool(file.filename)
    check_type_invariants(
        rt,
        url=url,
        has_file=has_upload or bool(file_path),
        has_file_attrs=any(v is not None for v in (file_path, file_name, file_size, mime_type)),
        year=year,
    )
    tag_names = normalize_tags(tags)
    if contact_email:
        contact_email = _checked_contact_email(contact_email)
    if file_path and not has_upload:
        file_path = _owned_path(user, file_path)

    stored_path = None
    if has_upload:
        if file.content_type not in ALLOWED_UPLOAD_MIMES:
            raise AppError(
                code="FILE_TYPE_NOT_ALLOWED",
                message="Invalid file type. Only PDF, DOC, DOCX, PPT, PPTX are allowed.",
                status_code=415,
            )
        try:
            blob = blob_store.save(file.file, make_object_key(user.id, file.filename), file.content_type)
        except FileTooLargeError:
            raise AppError(code="FILE_TOO_LARGE", message="File too large", status_code=413)
        except StorageError as e:
            logger.error("Blob upload failed user=%s: %s", user.id, e)
            raise AppError(code="STORAGE_ERROR", message="Failed to upload file to storage", status_code=500)
        stored_path = blob.path
        file_path, file_name, file_size, mime_type = blob.path, file.filename, blob.size, file.content_type

    is_link = rt == LINK
    r = Resource(
        title=title.strip(),
        description=description.strip(),
        subject=subject.strip(),
        resource_type=rt,
        semester=(semester or "").strip() or None,
        year=year,
        is_private=is_private,
        allow_contact=allow_contact,
        file_name=None if is_link else file_name,
        file_path=None if is_link else file_path,
        file_size=None if is_link else file_size,
        mime_type=None if is_link else mime_type,
        url=url if is_link else None,
        is_external=is_link,
        uploader_id=user.id,
    )
    if phone:
        user.phone = phone.strip()
    if contact_email:
        user.contact_email = contact_email

    try:
        db.add(r)
        db.flush()
        attach_tags(db, r, tag_names)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        if stored_path:
            delete_blob(blob_store, stored_path)
        raise

    logger.info("Resource created id=%s type=%s uploader=%s", r.id, r.resource_type, user.id)
    record_activity(db, user.id, r.id, UPLOAD)
    return created(request, resource_detail(r), "Resource uploaded successfully")


@router.get("/{rid}")
def get_resource(
    rid: str,
    request: Request,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    r = _get_or_404(db, rid)
    if not can_view(user, r):
        raise permission_denied("This resource is private")

    _increment(db, r, views=1)
    if user:
        record_activity(db, user.id, r.id, VIEW)
    return ok(request, resource_detail(r, _is_bookmarked(db, user, r.id)))


@router.put("/{rid}")
def update_resource(
    payload: ResourceUpdateIn,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    r: Resource = Depends(require_resource_owner(CONTRIBUTOR, ADMIN)),
):
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise validation_error("No fields to update")
    tags = data.pop("tags", None)

    for k in ("title", "description", "subject", "is_private", "allow_contact"):
        if k in data and data[k] is None:
            raise validation_error(f"{k} cannot be empty")
    if "url" in data:
        if r.resource_type != LINK:
            raise validation_error("URL is not allowed for file-based resources.")
        if not data["url"]:
            raise validation_error("URL is required for LINK type resources.")
    check_year(r.resource_type, data["year"] if "year" in data else r.year)

    for k, v in data.items():
        setattr(r, k, v)
    r.version = (r.version or 1) + 1
    if tags is not None:
        replace_tags(db, r, normalize_tags(tags))
    db.commit()
    db.refresh(r)
    logger.info("Resource updated id=%s by=%s fields=%s", r.id, user.id, sorted(data) + (["tags"] if tags is not None else []))
    return ok(request, resource_detail(r, _is_bookmarked(db, user, r.id)), "Resource updated successfully")


@router.delete("/{rid}")
def delete_resource(
    request: Request,
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    user: User = Depends(get_current_user),
    r: Resource = Depends(require_resource_owner(CONTRIBUTOR, ADMIN)),
):
    rid = r.id
    stored_path = r.file_path if r.resource_type != LINK else None
    if stored_path and _path_shared(db, r):
        # another resource still points at the blob
        stored_path = None
    db.delete(r)
    db.commit()
    logger.info("Resource deleted id=%s by=%s", rid, user.id)

    cleanup = delete_blob(blob_store, stored_path) if stored_path else None
    return ok(
        request,
        {"id": rid, "fileRemoved": cleanup.ok if cleanup else None},
        "Resource deleted successfully",
    )


@router.post("/{rid}/bookmark")
def bookmark_resource(
    rid: str,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    state = toggle_bookmark(db, user, rid)
    if state.bookmarked:
        record_activity(db, user.id, rid, BOOKMARK)
    return ok(
        request,
        {"bookmarked": state.bookmarked, "bookmarks": state.bookmarks},
        "Resource bookmarked" if state.bookmarked else "Bookmark removed",
    )


@router.post("/{rid}/download")
def download_resource(
    rid: str,
    request: Request,
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    settings: Settings = Depends(get_app_settings),
    user: User = Depends(get_current_user),
):
    r = _get_or_404(db, rid)
    if not can_view(user, r):
        raise permission_denied("Access denied to private resource")

    if r.resource_type == LINK:
        download_url, expires_in = r.url, None
    else:
        if not r.file_path:
            raise not_found("File not found")
        expires_in = settings.SIGNED_URL_EXPIRES_SECONDS
        try:
            download_url = blob_store.download_url(r.file_path, str(request.base_url), expires_in)
        except StorageError as e:
            logger.error("Signing download failed resource=%s: %s", r.id, e)
            raise AppError(code="STORAGE_ERROR", message="Failed to prepare download", status_code=500)

    _increment(db, r, downloads=1)
    record_activity(db, user.id, r.id, DOWNLOAD)
    return ok(
        request,
        {
            "downloadUrl": download_url,
            "fileName": r.file_name,
            "isExternal": r.is_external,
            "expiresIn": expires_in,
            "downloads": r.downloads,
        },
        "Download tracked successfully",
    )
