from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt

from volunteer_chat.core.clock import utcnow
from volunteer_chat.core.config import settings


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Mint a token shaped like the ones the auth platform issues (dev and tests)."""
    to_encode = dict(data)
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode["exp"] = expire
    if settings.JWT_AUDIENCE:
        to_encode.setdefault("aud", settings.JWT_AUDIENCE)
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_subject(token: Optional[str]) -> Optional[str]:
    """Return the ``sub`` claim of a valid token, or None."""
    if not token:
        return None
    options = {} if settings.JWT_AUDIENCE else {"verify_aud": False}
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options=options,
        )
    except JWTError:
        return None
    subject = payload.get("sub")
    if subject is None:
        return None
    return str(subject)
