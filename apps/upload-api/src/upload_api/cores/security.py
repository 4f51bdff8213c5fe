from datetime import datetime, timedelta, timezone
from typing import Optional

from authlib.jose import JsonWebToken
from authlib.jose.errors import JoseError

from shared_uploads.errors import UnauthorizedError
from upload_api.cores.config import settings

_jwt = JsonWebToken([settings.JWT_ALGORITHM])


def create_access_token(user_id: str, expires_in: timedelta = timedelta(days=7),
                        now: Optional[datetime] = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + expires_in).timestamp()),
    }
    token = _jwt.encode(
        header={"alg": settings.JWT_ALGORITHM},
        payload=payload,
        key=settings.JWT_SECRET_KEY
    )
    return token.decode("utf-8")


def decode_access_token(token: str) -> str:
    """Return the caller id carried by a bearer token."""
    try:
        claims = _jwt.decode(token, settings.JWT_SECRET_KEY)
        claims.validate()
    except (JoseError, ValueError) as e:
        raise UnauthorizedError("Invalid or expired token") from e
    # Older tokens carry the user id in `id` instead of `sub`
    user_id = claims.get("sub") or claims.get("id")
    if not user_id:
        raise UnauthorizedError("Unauthorized")
    return str(user_id)


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.strip():
        raise UnauthorizedError("No authorization token provided")
    scheme, _, credentials = authorization.strip().partition(" ")
    if scheme.lower() == "bearer":
        token = credentials.strip()
    else:
        token = authorization.strip()
    if not token:
        raise UnauthorizedError("No authorization token provided")
    return token
