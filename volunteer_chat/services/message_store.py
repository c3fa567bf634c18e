from __future__ import annotations

import logging
from typing import Dict, List, Optional

from sqlalchemy import asc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from volunteer_chat.core.clock import new_id, utcnow
from volunteer_chat.core.config import settings
from volunteer_chat.core.exceptions import NotFoundError, TransportError, ValidationError
from volunteer_chat.models.chat import ChatMessage, ChatRoom
from volunteer_chat.models.profile import Profile
from volunteer_chat.realtime.change_feed import ChangeFeed
from volunteer_chat.schemas.chat import ChatMessageRecord, ChatMessageView
from volunteer_chat.schemas.user import UNKNOWN_USER, display_name_for

logger = logging.getLogger(__name__)


class MessageStore:
    """Append-only message log per chat room."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        feed: Optional[ChangeFeed] = None,
        max_length: Optional[int] = None,
    ) -> None:
        self.session_factory = session_factory
        self.feed = feed
        self.max_length = max_length or settings.CHAT_MESSAGE_MAX_LENGTH

    def validate_body(self, body: Optional[str]) -> str:
        text = (body or "").strip()
        if not text:
            raise ValidationError("Message text must not be empty")
        if len(text) > self.max_length:
            raise ValidationError(f"Message text is longer than {self.max_length} characters")
        return text

    async def append_message(
        self,
        room_id: str,
        sender_id: Optional[str],
        body: str,
        is_system_message: bool = False,
    ) -> ChatMessageRecord:
        text = self.validate_body(body)
        try:
            async with self.session_factory() as db:
                room = await db.get(ChatRoom, room_id)
                if room is None:
                    raise NotFoundError(f"Chat room {room_id} does not exist")
                message = ChatMessage(
                    id=new_id(),
                    chat_room_id=room_id,
                    sender_id=sender_id,
                    message=text,
                    is_system_message=is_system_message,
                    created_at=utcnow(),
                )
                db.add(message)
                record = ChatMessageRecord.model_validate(message)
                await db.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to append message to room %s: %s", room_id, exc.__class__.__name__)
            raise TransportError("Could not store chat message") from exc

        logger.debug("Stored message %s in room %s", record.id, room_id)
        if self.feed is not None:
            await self.feed.publish(room_id, record)
        return record

    async def list_messages(self, room_id: str) -> List[ChatMessageRecord]:
        stmt = (
            select(ChatMessage)
            .where(ChatMessage.chat_room_id == room_id)
            .order_by(asc(ChatMessage.created_at), asc(ChatMessage.id))
        )
        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                return [ChatMessageRecord.model_validate(m) for m in result.scalars()]
        except SQLAlchemyError as exc:
            raise TransportError("Could not load chat history") from exc

    async def list_enriched_messages(
        self,
        room_id: str,
        owner_id: Optional[str],
        viewer_id: Optional[str],
    ) -> List[ChatMessageView]:
        stmt = (
            select(ChatMessage, Profile)
            .outerjoin(Profile, Profile.id == ChatMessage.sender_id)
            .where(ChatMessage.chat_room_id == room_id)
            .order_by(asc(ChatMessage.created_at), asc(ChatMessage.id))
        )
        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as exc:
            raise TransportError("Could not load chat history") from exc

        return [
            enrich_message(
                ChatMessageRecord.model_validate(message),
                _profile_display_name(profile),
                owner_id,
                viewer_id,
            )
            for message, profile in rows
        ]

    async def display_names(self, sender_ids: List[str]) -> Dict[str, str]:
        """Display names for the given profile ids; unknown ids are left out."""
        ids = [sender_id for sender_id in set(sender_ids) if sender_id]
        if not ids:
            return {}
        try:
            async with self.session_factory() as db:
                result = await db.execute(select(Profile).where(Profile.id.in_(ids)))
                return {profile.id: _profile_display_name(profile) for profile in result.scalars()}
        except SQLAlchemyError as exc:
            raise TransportError("Could not load sender profiles") from exc


def _profile_display_name(profile: Optional[Profile]) -> str:
    if profile is None:
        return UNKNOWN_USER
    return display_name_for(profile.first_name, profile.last_name, profile.email)


def enrich_message(
    record: ChatMessageRecord,
    sender_display_name: str,
    owner_id: Optional[str],
    viewer_id: Optional[str],
) -> ChatMessageView:
    is_own = record.sender_id is not None and record.sender_id == viewer_id
    return ChatMessageView(
        **record.model_dump(),
        sender_display_name=sender_display_name,
        is_from_opportunity_owner=record.sender_id is not None and record.sender_id == owner_id,
        is_read=is_own,
    )


def serialize_message(message: ChatMessageRecord) -> dict:
    """JSON-ready payload with camelCase keys."""
    return message.model_dump(mode="json", by_alias=True)
