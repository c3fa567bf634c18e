from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import async_sessionmaker

from volunteer_chat.core.dependencies import chat_http_error, get_change_feed, get_sessions, require_actor
from volunteer_chat.core.exceptions import ChatError
from volunteer_chat.realtime.change_feed import ChangeFeed
from volunteer_chat.schemas.chat import (
    ChatMessageCreate,
    ChatMessageRecord,
    ChatRoomResponse,
    ChatSessionView,
)
from volunteer_chat.schemas.user import Actor
from volunteer_chat.services.chat_session import ChatSession
from volunteer_chat.services.message_store import MessageStore
from volunteer_chat.services.opportunity import OpportunityDirectory
from volunteer_chat.services.room_resolver import RoomResolver

router = APIRouter()


@router.get("/{opportunity_id}/chat/messages", response_model=ChatSessionView)
async def get_opportunity_chat(
    opportunity_id: str,
    actor: Actor = Depends(require_actor),
    sessions: async_sessionmaker = Depends(get_sessions),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """History of the opportunity's group chat, as seen by the caller."""
    try:
        async with ChatSession(opportunity_id, actor, session_factory=sessions, feed=feed) as session:
            return session.snapshot()
    except ChatError as exc:
        raise chat_http_error(exc)


@router.post(
    "/{opportunity_id}/chat/messages",
    response_model=ChatMessageRecord,
    status_code=status.HTTP_201_CREATED,
)
async def post_opportunity_chat_message(
    opportunity_id: str,
    payload: ChatMessageCreate,
    actor: Actor = Depends(require_actor),
    sessions: async_sessionmaker = Depends(get_sessions),
    feed: ChangeFeed = Depends(get_change_feed),
):
    store = MessageStore(sessions, feed)
    resolver = RoomResolver(sessions, store)
    try:
        text = store.validate_body(payload.text)
        await OpportunityDirectory(sessions).get(opportunity_id)
        room_id = await resolver.resolve_or_create_room(opportunity_id)
        return await store.append_message(room_id, actor.id, text)
    except ChatError as exc:
        raise chat_http_error(exc)


@router.post("/{opportunity_id}/chat/room", response_model=ChatRoomResponse)
async def ensure_opportunity_chat_room(
    opportunity_id: str,
    actor: Actor = Depends(require_actor),
    sessions: async_sessionmaker = Depends(get_sessions),
    feed: ChangeFeed = Depends(get_change_feed),
):
    resolver = RoomResolver(sessions, MessageStore(sessions, feed))
    try:
        await resolver.resolve_or_create_room(opportunity_id)
        room = await resolver.find_room(opportunity_id)
    except ChatError as exc:
        raise chat_http_error(exc)
    if room is None:
        raise chat_http_error(ChatError(f"Chat room for opportunity {opportunity_id} vanished"))
    return room
