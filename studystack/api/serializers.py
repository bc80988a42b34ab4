from datetime import datetime
from studystack.models.activity import Activity
from studystack.models.bookmark import Bookmark
from studystack.models.resource import Resource
from studystack.models.user import User


def iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def user_brief(u: User) -> dict:
    return {"id": u.id, "name": u.name, "institution": u.institution, "avatar": u.avatar}


def user_profile(u: User) -> dict:
    return {
        "id": u.id,
        "email": u.email,
        "name": u.name,
        "role": u.role,
        "institution": u.institution,
        "bio": u.bio,
        "phone": u.phone,
        "contactEmail": u.contact_email,
        "website": u.website,
        "avatar": u.avatar,
        "isVerified": u.is_verified,
        "createdAt": iso(u.created_at),
        "updatedAt": iso(u.updated_at),
    }


def resource_summary(r: Resource) -> dict:
    return {
        "id": r.id,
        "title": r.title,
        "description": r.description,
        "subject": r.subject,
        "resourceType": r.resource_type,
        "semester": r.semester,
        "year": r.year,
        "fileSize": r.file_size,
        "isExternal": r.is_external,
        "isPrivate": r.is_private,
        "allowContact": r.allow_contact,
        "views": r.views,
        "downloads": r.downloads,
        "bookmarks": r.bookmarks,
        "createdAt": iso(r.created_at),
        "updatedAt": iso(r.updated_at),
        "uploader": user_brief(r.uploader),
        "tags": [t.name for t in r.tags],
    }


def resource_detail(r: Resource, is_bookmarked: bool = False) -> dict:
    data = resource_summary(r)
    uploader = {**user_brief(r.uploader), "email": r.uploader.email, "bio": r.uploader.bio, "website": r.uploader.website}
    if r.allow_contact:
        uploader.update({"phone": r.uploader.phone, "contactEmail": r.uploader.contact_email})
    data.update(
        {
            "fileName": r.file_name,
            "filePath": r.file_path,
            "mimeType": r.mime_type,
            "url": r.url,
            "version": r.version,
            "uploaderId": r.uploader_id,
            "uploader": uploader,
            "isBookmarked": is_bookmarked,
        }
    )
    return data


def bookmark_out(b: Bookmark) -> dict:
    return {
        "id": b.id,
        "category": b.category,
        "createdAt": iso(b.created_at),
        "resource": resource_summary(b.resource),
    }


def activity_out(a: Activity) -> dict:
    r = a.resource
    return {
        "id": a.id,
        "action": a.action,
        "timestamp": iso(a.timestamp),
        "resource": {
            "id": r.id,
            "title": r.title,
            "subject": r.subject,
            "resourceType": r.resource_type,
            "uploader": {"name": r.uploader.name, "institution": r.uploader.institution},
        },
    }
