from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from typing import Optional
from volunteer_chat.core.database import get_db, get_session_factory
from volunteer_chat.core.exceptions import (
    AuthenticationError,
    ChatError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from volunteer_chat.core.security import decode_subject
from volunteer_chat.models.profile import Profile
from volunteer_chat.realtime.change_feed import ChangeFeed, change_feed
from volunteer_chat.schemas.user import Actor

security = HTTPBearer(auto_error=False)


async def get_actor_by_id(db: AsyncSession, profile_id: Optional[str]) -> Optional[Actor]:
    if not profile_id:
        return None
    profile = await db.get(Profile, profile_id)
    if profile is None:
        return None
    return Actor.model_validate(profile)


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> Optional[Actor]:
    """
    Resolves the actor from a bearer token issued by the auth platform.
    Returns None when the token is missing or invalid.
    """
    if not credentials:
        return None
    return await get_actor_by_id(db, decode_subject(credentials.credentials))


async def require_actor(
    current_actor: Optional[Actor] = Depends(get_current_actor)
) -> Actor:
    if current_actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current_actor


def get_change_feed() -> ChangeFeed:
    return change_feed


def get_sessions() -> async_sessionmaker:
    return get_session_factory()


def chat_http_error(exc: ChatError) -> HTTPException:
    if isinstance(exc, AuthenticationError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message)
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
    if isinstance(exc, TransportError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message)
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message)
