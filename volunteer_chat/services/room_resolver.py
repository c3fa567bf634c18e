from __future__ import annotations

import logging
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from volunteer_chat.core.clock import new_id, utcnow
from volunteer_chat.core.exceptions import NotFoundError, TransportError
from volunteer_chat.models.chat import ChatRoom
from volunteer_chat.models.opportunity import Opportunity
from volunteer_chat.realtime.change_feed import ChangeFeed
from volunteer_chat.schemas.chat import ChatRoomResponse
from volunteer_chat.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class RoomResolver:
    """Maps an opportunity to its single chat room, creating it on demand."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        message_store: Optional[MessageStore] = None,
        feed: Optional[ChangeFeed] = None,
    ) -> None:
        self.session_factory = session_factory
        self.message_store = message_store
        self.feed = feed if feed is not None else getattr(message_store, "feed", None)

    async def find_room(self, opportunity_id: str) -> Optional[ChatRoomResponse]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(ChatRoom).where(ChatRoom.opportunity_id == opportunity_id)
                )
                room = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise TransportError("Could not look up chat room") from exc
        if room is None:
            return None
        return ChatRoomResponse.model_validate(room)

    async def resolve_or_create_room(
        self,
        opportunity_id: str,
        *,
        announcement: Optional[str] = None,
        announced_by: Optional[str] = None,
    ) -> str:
        """Return the room id for ``opportunity_id``.

        When this call is the one that creates the room and an announcement
        is given, a single system message is posted to the new room.
        """
        room = await self.find_room(opportunity_id)
        if room is not None:
            return room.id

        room_id, created = await self._create_room(opportunity_id)
        if created and self.feed is not None:
            await self.feed.publish_room_created(opportunity_id, room_id)
        if created and announcement and self.message_store is not None:
            await self.message_store.append_message(
                room_id,
                announced_by,
                announcement,
                is_system_message=True,
            )
        return room_id

    async def _create_room(self, opportunity_id: str) -> Tuple[str, bool]:
        try:
            async with self.session_factory() as db:
                if await db.get(Opportunity, opportunity_id) is None:
                    raise NotFoundError(f"Opportunity {opportunity_id} does not exist")
                room_id = new_id()
                db.add(ChatRoom(id=room_id, opportunity_id=opportunity_id, created_at=utcnow()))
                try:
                    await db.commit()
                except IntegrityError:
                    await db.rollback()
                    logger.info(
                        "Chat room for opportunity %s was created concurrently, re-fetching",
                        opportunity_id,
                    )
                else:
                    logger.info("Created chat room %s for opportunity %s", room_id, opportunity_id)
                    return room_id, True
        except SQLAlchemyError as exc:
            raise TransportError("Could not create chat room") from exc

        existing = await self.find_room(opportunity_id)
        if existing is None:
            raise TransportError(f"Chat room for opportunity {opportunity_id} could not be created")
        return existing.id, False
