import logging
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from studystack.core.errors import auth_invalid_token, duplicate_field
from studystack.core.identity import Identity, IdentityProvider
from studystack.models.user import User, ROLES, VIEWER

logger = logging.getLogger(__name__)


def initial_role(claim: str | None) -> str:
    role = (claim or "").strip().upper()
    return role if role in ROLES else VIEWER


def sync_local_user(db: Session, identity: Identity, provider: IdentityProvider | None = None) -> User:
    """Return the local user for a verified identity, creating it on first sight.

    Missing profile fields are fetched from the provider before creation; the
    role comes from the provider's role claim and falls back to VIEWER.
    """
    user = db.query(User).filter(User.external_id == identity.external_id).first()
    if user:
        return user

    if not identity.email and provider is not None:
        identity = provider.fetch_profile(identity)
    if not identity.email:
        raise auth_invalid_token("Identity carries no email address")

    email = identity.email.strip().lower()
    user = User(
        external_id=identity.external_id,
        email=email,
        name=identity.name or email,
        role=initial_role(identity.role),
        is_verified=identity.email_verified,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        # a concurrent first request may have created the row already
        user = db.query(User).filter(User.external_id == identity.external_id).first()
        if user is None:
            raise duplicate_field("Email already registered to another account")
        return user
    logger.info("Created local user id=%s external_id=%s role=%s", user.id, user.external_id, user.role)
    return user
