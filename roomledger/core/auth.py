from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Depends, HTTPException, Request

from roomledger.core.config import settings

ROLE_ADMIN = "admin"
ROLE_CUSTOMER = "customer"


@dataclass(frozen=True)
class SessionIdentity:
    """Caller identity as asserted by the session provider."""

    user_id: str
    email: str | None
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def issue_session_token(
    user_id: str,
    email: str | None = None,
    role: str = ROLE_CUSTOMER,
    ttl: timedelta = timedelta(hours=12),
) -> str:
    """Sign a session token. The identity provider owns issuance; this mirrors its format."""
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "exp": datetime.now(UTC) + ttl,
    }
    return jwt.encode(payload, settings.SESSION_SECRET, algorithm=settings.SESSION_ALGORITHM)


def decode_session_token(token: str) -> SessionIdentity:
    """Decode a session token.

    Raises jwt.ExpiredSignatureError or jwt.InvalidTokenError on failure.
    """
    payload = jwt.decode(token, settings.SESSION_SECRET, algorithms=[settings.SESSION_ALGORITHM])
    if not payload.get("sub"):
        raise jwt.InvalidTokenError("Missing subject")
    email = payload.get("email")
    return SessionIdentity(
        user_id=str(payload["sub"]),
        email=email.strip() if isinstance(email, str) and email.strip() else None,
        role=str(payload.get("role") or ROLE_CUSTOMER).lower(),
    )


def get_session_identity(request: Request) -> SessionIdentity:
    """Extract the caller identity from the ``Authorization: Bearer`` header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Authentication required")

    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = auth_header[7:]
    try:
        return decode_session_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Session has expired") from None
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid session token") from None


def require_admin(identity: SessionIdentity = Depends(get_session_identity)) -> SessionIdentity:
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return identity
