from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from volunteer_chat.core.dependencies import chat_http_error, get_change_feed, get_sessions, require_actor
from volunteer_chat.core.exceptions import ChatError
from volunteer_chat.realtime.change_feed import ChangeFeed
from volunteer_chat.schemas.opportunity import ApplicationStatusResult, ApplicationStatusUpdate
from volunteer_chat.schemas.user import Actor
from volunteer_chat.services.applications import ApplicationService
from volunteer_chat.services.message_store import MessageStore
from volunteer_chat.services.room_resolver import RoomResolver

router = APIRouter()


@router.post("/{opportunity_id}/applications/status", response_model=ApplicationStatusResult)
async def update_application_status(
    opportunity_id: str,
    payload: ApplicationStatusUpdate,
    actor: Actor = Depends(require_actor),
    sessions: async_sessionmaker = Depends(get_sessions),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Accept or reject volunteers; accepting opens the group chat."""
    service = ApplicationService(sessions, RoomResolver(sessions, MessageStore(sessions, feed)))
    try:
        return await service.update_status(
            opportunity_id,
            payload.application_ids,
            payload.status,
            actor,
        )
    except ChatError as exc:
        raise chat_http_error(exc)
