"""Client for the external identity provider.

StudyStack never authenticates users itself. Session tokens are issued by the
provider and only *verified* here, either with a shared HS256 secret or with
the provider's published JWKS. Profile fields the token does not carry are
looked up through the provider's user API.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any

import jwt
import requests

from studystack.core.config import Settings

logger = logging.getLogger(__name__)


class IdentityError(Exception):
    """Raised when a token cannot be verified or a profile cannot be fetched."""


@dataclass(frozen=True)
class Identity:
    external_id: str
    email: str | None = None
    name: str | None = None
    role: str | None = None
    email_verified: bool = False


def _role_claim(claims: dict[str, Any]) -> str | None:
    for key in ("public_metadata", "publicMetadata", "metadata"):
        meta = claims.get(key)
        if isinstance(meta, dict) and meta.get("role"):
            return str(meta["role"])
    role = claims.get("role")
    return str(role) if role else None


def _name_claim(claims: dict[str, Any]) -> str | None:
    if claims.get("name"):
        return str(claims["name"])
    first = claims.get("given_name") or claims.get("first_name") or ""
    last = claims.get("family_name") or claims.get("last_name") or ""
    full = f"{first} {last}".strip()
    return full or None


class IdentityProvider:
    def __init__(
        self,
        *,
        secret: str | None = None,
        algorithm: str = "HS256",
        jwks_url: str | None = None,
        issuer: str | None = None,
        audience: str | None = None,
        api_url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: int = 10,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._jwks = jwt.PyJWKClient(jwks_url) if jwks_url else None
        self._issuer = issuer
        self._audience = audience
        self._api_url = api_url.rstrip("/") if api_url else None
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._http = requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "IdentityProvider":
        return cls(
            secret=settings.IDENTITY_JWT_SECRET,
            algorithm=settings.IDENTITY_JWT_ALG,
            jwks_url=settings.IDENTITY_JWKS_URL,
            issuer=settings.IDENTITY_ISSUER,
            audience=settings.IDENTITY_AUDIENCE,
            api_url=settings.IDENTITY_API_URL,
            api_key=settings.IDENTITY_API_KEY,
            timeout_seconds=settings.IDENTITY_TIMEOUT_SECONDS,
        )

    def verify_token(self, token: str) -> Identity:
        try:
            if self._jwks is not None:
                key = self._jwks.get_signing_key_from_jwt(token).key
                algorithms = ["RS256"]
            elif self._secret:
                key = self._secret
                algorithms = [self._algorithm]
            else:
                raise IdentityError("identity provider is not configured")
            claims = jwt.decode(
                token,
                key,
                algorithms=algorithms,
                audience=self._audience,
                issuer=self._issuer,
                options={"require": ["sub", "exp"], "verify_aud": self._audience is not None},
            )
        except jwt.PyJWTError as e:
            raise IdentityError(str(e)) from e
        return Identity(
            external_id=str(claims["sub"]),
            email=claims.get("email"),
            name=_name_claim(claims),
            role=_role_claim(claims),
            email_verified=bool(claims.get("email_verified", False)),
        )

    def fetch_profile(self, identity: Identity) -> Identity:
        """Fill in email/name/role from the provider's user API."""
        if not self._api_url:
            return identity
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        try:
            resp = self._http.get(
                f"{self._api_url}/users/{identity.external_id}",
                headers=headers,
                timeout=self._timeout_seconds,
            )
            resp.raise_for_status()
            body = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise IdentityError(f"profile lookup failed for {identity.external_id}: {e}") from e

        email = body.get("email")
        addresses = body.get("email_addresses") or []
        if not email and addresses:
            email = addresses[0].get("email_address")
        return replace(
            identity,
            email=identity.email or email,
            name=identity.name or _name_claim(body),
            role=identity.role or _role_claim(body),
        )

    def close(self) -> None:
        self._http.close()
