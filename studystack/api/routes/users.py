from datetime import date, datetime, time, timedelta, timezone
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func
from sqlalchemy.orm import Session
from studystack.api.deps import get_current_user, get_db
from studystack.api.serializers import activity_out, bookmark_out, iso
from studystack.core.errors import validation_error
from studystack.core.rbac import require_roles
from studystack.core.response import created, ok, page_meta
from studystack.models.activity import Activity, ACTIVITY_ACTIONS, BOOKMARK
from studystack.models.bookmark import Bookmark
from studystack.models.resource import Resource
from studystack.models.user import User, ADMIN, CONTRIBUTOR
from studystack.schemas.resource import BookmarkCreateIn
from studystack.services.bookmarks import add_bookmark, remove_bookmark
from studystack.services.side_effects import record_activity

router = APIRouter(prefix="/api/users", tags=["users"])

MAX_PAGE_SIZE = 50
PERIODS = {"7d": 7, "30d": 30, "90d": 90}
SERIES_KEYS = {"VIEW": "views", "DOWNLOAD": "downloads", "BOOKMARK": "bookmarks", "SHARE": "shares"}


@router.get("/stats")
def user_stats(request: Request, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    total, views, downloads = (
        db.query(
            func.count(Resource.id),
            func.coalesce(func.sum(Resource.views), 0),
            func.coalesce(func.sum(Resource.downloads), 0),
        )
        .filter(Resource.uploader_id == user.id)
        .one()
    )
    activity_count = db.query(func.count(Activity.id)).filter(Activity.user_id == user.id).scalar()
    bookmark_count = db.query(func.count(Bookmark.id)).filter(Bookmark.user_id == user.id).scalar()
    recent = (
        db.query(Activity)
        .filter(Activity.user_id == user.id)
        .order_by(Activity.timestamp.desc())
        .limit(10)
        .all()
    )
    return ok(
        request,
        {
            "resources": {"total": int(total), "totalViews": int(views), "totalDownloads": int(downloads)},
            "activities": int(activity_count or 0),
            "bookmarks": int(bookmark_count or 0),
            "recentActivities": [activity_out(a) for a in recent],
        },
    )


@router.get("/bookmarks")
def list_bookmarks(
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    category: str | None = None,
):
    q = db.query(Bookmark).filter(Bookmark.user_id == user.id)
    if category:
        q = q.filter(Bookmark.category == category)
    total = q.count()
    rows = q.order_by(Bookmark.created_at.desc(), Bookmark.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return ok(request, {"bookmarks": [bookmark_out(b) for b in rows], "pagination": page_meta(page, limit, total)})


@router.post("/bookmarks")
def create_bookmark(
    payload: BookmarkCreateIn,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    state = add_bookmark(db, user, payload.resource_id, payload.category)
    record_activity(db, user.id, payload.resource_id, BOOKMARK)
    b = state.bookmark
    return created(
        request,
        {
            "id": b.id,
            "category": b.category,
            "createdAt": iso(b.created_at),
            "resource": {"id": b.resource.id, "title": b.resource.title},
            "bookmarks": state.bookmarks,
        },
        "Resource bookmarked successfully",
    )


@router.delete("/bookmarks/{bookmark_id}")
def delete_bookmark(
    bookmark_id: str,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    state = remove_bookmark(db, user, bookmark_id)
    return ok(request, {"id": bookmark_id, "bookmarks": state.bookmarks}, "Bookmark removed successfully")


@router.get("/activities")
def list_activities(
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    action: str | None = None,
):
    q = db.query(Activity).filter(Activity.user_id == user.id)
    if action:
        action = action.strip().upper()
        if action not in ACTIVITY_ACTIONS:
            raise validation_error("Invalid activity action", {"allowed": list(ACTIVITY_ACTIONS)})
        q = q.filter(Activity.action == action)
    total = q.count()
    rows = q.order_by(Activity.timestamp.desc(), Activity.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return ok(request, {"activities": [activity_out(a) for a in rows], "pagination": page_meta(page, limit, total)})


def _daily_series(timestamps_actions, start: date, days: int) -> list[dict]:
    buckets = {
        start + timedelta(days=i): {"views": 0, "downloads": 0, "bookmarks": 0, "shares": 0} for i in range(days)
    }
    for ts, action in timestamps_actions:
        day = (ts.astimezone(timezone.utc) if ts.tzinfo else ts).date()
        key = SERIES_KEYS.get(action)
        if key and day in buckets:
            buckets[day][key] += 1
    return [{"date": d.isoformat(), **counts} for d, counts in sorted(buckets.items())]


@router.get("/analytics")
def user_analytics(
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(CONTRIBUTOR, ADMIN)),
    period: str = "30d",
):
    if period not in PERIODS:
        raise validation_error("Invalid period", {"allowed": list(PERIODS)})
    days = PERIODS[period]
    today = datetime.now(timezone.utc).date()
    start_day = today - timedelta(days=days - 1)
    since = datetime.combine(start_day, time.min, tzinfo=timezone.utc)

    resources = (
        db.query(Resource)
        .filter(Resource.uploader_id == user.id)
        .order_by(Resource.views.desc(), Resource.created_at.desc())
        .all()
    )
    total_views = sum(r.views for r in resources)
    total_downloads = sum(r.downloads for r in resources)
    total_bookmarks = sum(r.bookmarks for r in resources)
    engagement = round(total_downloads / total_views * 100, 2) if total_views > 0 else 0

    events = (
        db.query(Activity.timestamp, Activity.action)
        .join(Resource, Resource.id == Activity.resource_id)
        .filter(Resource.uploader_id == user.id, Activity.timestamp >= since)
        .all()
    )

    return ok(
        request,
        {
            "overview": {
                "totalResources": len(resources),
                "totalViews": total_views,
                "totalDownloads": total_downloads,
                "totalBookmarks": total_bookmarks,
                "engagementRate": engagement,
            },
            "topResources": [
                {
                    "id": r.id,
                    "title": r.title,
                    "views": r.views,
                    "downloads": r.downloads,
                    "bookmarks": r.bookmarks,
                    "createdAt": iso(r.created_at),
                }
                for r in resources[:5]
            ],
            "dailyStats": _daily_series(events, start_day, days),
            "period": period,
        },
    )
