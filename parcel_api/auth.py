import logging
from typing import Optional
from fastapi import Depends, Header, Request
from jose import jwt, JWTError

from parcel_api.config import settings
from parcel_api.errors import AdapterError, AuthError, OwnershipError
from parcel_api.store import RecordStore, get_store

logger = logging.getLogger(__name__)


class IdentityVerifier:
    """Resolves a bearer token to the email of the authenticated principal."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def verify(self, token: str) -> str:
        if not token:
            raise AuthError("Invalid or missing token")
        if not self.secret:
            raise AdapterError("Token verification is not configured")
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError:
            raise AuthError("Invalid or missing token")

        email = claims.get("email")
        if not email:
            raise AuthError("Token does not carry an email")
        return email


def get_identity_verifier() -> IdentityVerifier:
    return IdentityVerifier(settings.jwt_secret, settings.jwt_algorithm)


def verify_token(
    request: Request,
    authorization: Optional[str] = Header(None),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> str:
    if not authorization:
        raise AuthError("Invalid or missing token")
    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthError("Invalid or missing token")
    if scheme.lower() != "bearer":
        raise AuthError("Invalid or missing token")

    email = verifier.verify(token)
    request.state.email = email
    return email


def require_owner(requested_email: Optional[str], authenticated_email: str):
    if requested_email and requested_email != authenticated_email:
        logger.warning("ownership mismatch: %s asked for records of %s", authenticated_email, requested_email)
        raise OwnershipError("You can only access your own records")


def is_admin(store: RecordStore, email: str) -> bool:
    user = store.find_one("users", {"email": email})
    return bool(user) and user["role"] == "admin"


def owner_scope(store: RecordStore, requested_email: Optional[str], authenticated_email: str) -> Optional[str]:
    """Owner email a collection query must be filtered by, or None for an admin listing everything.

    Non-admin callers are always scoped to themselves, even when they omit the filter.
    """
    if requested_email == authenticated_email:
        return authenticated_email
    if is_admin(store, authenticated_email):
        return requested_email
    require_owner(requested_email, authenticated_email)
    return authenticated_email


def require_admin(
    email: str = Depends(verify_token),
    store: RecordStore = Depends(get_store),
) -> str:
    if not is_admin(store, email):
        raise OwnershipError("Admin access required")
    return email
