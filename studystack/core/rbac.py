from fastapi import Depends
from sqlalchemy.orm import Session
from studystack.api.deps import get_current_user, get_db
from studystack.core.errors import not_found, permission_denied
from studystack.models.resource import Resource
from studystack.models.user import User, ADMIN


def require_roles(*roles: str):
    def _guard(user: User = Depends(get_current_user)) -> User:
        if roles and user.role not in roles:
            raise permission_denied()
        return user

    return _guard


def require_resource_owner(*roles: str):
    """Role gate plus ownership: the caller must be the uploader or an admin."""

    def _guard(rid: str, db: Session = Depends(get_db), user: User = Depends(require_roles(*roles))) -> Resource:
        r = db.query(Resource).filter(Resource.id == rid).first()
        if not r:
            raise not_found()
        if r.uploader_id != user.id and user.role != ADMIN:
            raise permission_denied("You can only modify your own resources")
        return r

    return _guard
