import logging
from collections.abc import Iterator
from fastapi import Depends, Header, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from studystack.core.config import Settings
from studystack.core.errors import AppError, auth_invalid_token, auth_required, internal_error
from studystack.core.identity import Identity, IdentityError, IdentityProvider
from studystack.core.services import AppServices
from studystack.core.storage import BlobStore
from studystack.models.user import User
from studystack.services.users import sync_local_user

logger = logging.getLogger(__name__)


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_db(services: AppServices = Depends(get_services)) -> Iterator[Session]:
    db = services.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_blob_store(services: AppServices = Depends(get_services)) -> BlobStore:
    return services.blob_store


def get_identity_provider(services: AppServices = Depends(get_services)) -> IdentityProvider:
    return services.identity


def _bearer(authorization: str | None) -> str | None:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def get_identity(
    authorization: str | None = Header(default=None),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Identity:
    token = _bearer(authorization)
    if not token:
        raise auth_required()
    try:
        return provider.verify_token(token)
    except IdentityError as e:
        logger.info("Token rejected: %s", e)
        raise auth_invalid_token()


def _sync(db: Session, identity: Identity, provider: IdentityProvider) -> User:
    try:
        return sync_local_user(db, identity, provider)
    except AppError:
        raise
    except (SQLAlchemyError, IdentityError) as e:
        logger.exception("Local user sync failed external_id=%s: %s", identity.external_id, e)
        raise internal_error("Internal server error during authorization.")


def get_current_user(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> User:
    return _sync(db, identity, provider)


def get_optional_user(
    db: Session = Depends(get_db),
    authorization: str | None = Header(default=None),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> User | None:
    token = _bearer(authorization)
    if not token:
        return None
    try:
        identity = provider.verify_token(token)
    except IdentityError:
        return None
    return _sync(db, identity, provider)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
