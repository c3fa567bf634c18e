from __future__ import annotations

import asyncio
import bisect
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Set

from sqlalchemy.ext.asyncio import async_sessionmaker

from volunteer_chat.core.clock import utcnow
from volunteer_chat.core.config import settings
from volunteer_chat.core.database import get_session_factory
from volunteer_chat.core.exceptions import AuthenticationError, ChatError, LoadTimeoutError
from volunteer_chat.realtime.change_feed import ChangeFeed, Subscription, change_feed
from volunteer_chat.schemas.chat import (
    ChatMessageRecord,
    ChatMessageView,
    ChatNotification,
    ChatSessionView,
    SessionState,
)
from volunteer_chat.schemas.opportunity import OpportunityInfo
from volunteer_chat.schemas.user import UNKNOWN_USER, Actor
from volunteer_chat.services.message_store import MessageStore, enrich_message
from volunteer_chat.services.notifications import LoggingNotificationSink, NotificationSink
from volunteer_chat.services.opportunity import OpportunityDirectory
from volunteer_chat.services.room_resolver import RoomResolver

logger = logging.getLogger(__name__)

MessageListener = Callable[[ChatMessageView], Awaitable[None]]


def _sort_key(message: ChatMessageView) -> tuple:
    return message.sort_key


class ChatSession:
    """Group chat for one opportunity, as seen by one actor.

    Lifecycle is ``IDLE -> LOADING -> READY`` and back to ``IDLE`` on
    close. A load that fails or times out ends in ``FAILED``; the caller
    reopens to retry. Sending never blocks receipt of feed events, and the
    locally held messages stay sorted by ``(created_at, id)`` without
    duplicates whatever order the feed delivers in. ``on_message`` and the
    notification sink only hear about messages that arrive once the session
    is ready; anything earlier is already in the opened view.

    Read state lives only in this object. ``foreground`` tells the session
    whether the user is looking at it; messages from others arriving while
    in the background bump ``unread_count`` and go to the notification sink.
    """

    def __init__(
        self,
        opportunity_id: str,
        actor: Optional[Actor],
        *,
        session_factory: Optional[async_sessionmaker] = None,
        feed: Optional[ChangeFeed] = None,
        notifications: Optional[NotificationSink] = None,
        message_store: Optional[MessageStore] = None,
        room_resolver: Optional[RoomResolver] = None,
        opportunities: Optional[OpportunityDirectory] = None,
        on_message: Optional[MessageListener] = None,
        foreground: bool = False,
        unread_window: Optional[timedelta] = None,
        load_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.opportunity_id = opportunity_id
        self.actor = actor
        factory = session_factory or get_session_factory()
        self.feed = feed or change_feed
        self.notifications = notifications or LoggingNotificationSink()
        self.message_store = message_store or MessageStore(factory, self.feed)
        self.room_resolver = room_resolver or RoomResolver(factory, self.message_store)
        self.opportunities = opportunities or OpportunityDirectory(factory)
        self.on_message = on_message
        self.foreground = foreground
        self.unread_window = unread_window or timedelta(hours=settings.CHAT_UNREAD_WINDOW_HOURS)
        self.load_timeout = load_timeout if load_timeout is not None else settings.CHAT_LOAD_TIMEOUT_SECONDS
        self.clock = clock

        self.state = SessionState.IDLE
        self.is_sending = False
        self.unread_count = 0
        self.room_id: Optional[str] = None
        self.opportunity: Optional[OpportunityInfo] = None
        self._messages: List[ChatMessageView] = []
        self._message_ids: Set[str] = set()
        self._display_names: Dict[str, str] = {}
        self._subscription: Optional[Subscription] = None
        self._room_watch: Optional[Subscription] = None
        self._attach_lock = asyncio.Lock()

    async def __aenter__(self) -> "ChatSession":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def messages(self) -> List[ChatMessageView]:
        return list(self._messages)

    @property
    def owner_id(self) -> Optional[str]:
        return self.opportunity.created_by if self.opportunity else None

    def _require_actor(self) -> Actor:
        if self.actor is None or not self.actor.id:
            raise AuthenticationError("A signed-in user is required for the chat")
        return self.actor

    async def open(self) -> "ChatSession":
        self._require_actor()
        if self.state not in (SessionState.IDLE, SessionState.FAILED):
            raise ChatError(f"Chat session for opportunity {self.opportunity_id} is already open")

        self._reset_view()
        self.state = SessionState.LOADING
        loaded = False
        try:
            await asyncio.wait_for(self._load(), timeout=self.load_timeout)
            loaded = True
        except asyncio.TimeoutError as exc:
            logger.warning(
                "Loading chat for opportunity %s timed out after %ss",
                self.opportunity_id,
                self.load_timeout,
            )
            raise LoadTimeoutError("Chat history did not load in time") from exc
        finally:
            if not loaded:
                await self._teardown()
                self.state = SessionState.FAILED

        self.state = SessionState.READY
        logger.debug(
            "Chat session ready for opportunity %s with %d messages",
            self.opportunity_id,
            len(self._messages),
        )
        return self

    async def _load(self) -> None:
        self.opportunity = await self.opportunities.get(self.opportunity_id)
        room = await self.room_resolver.find_room(self.opportunity_id)
        if room is None:
            # No room yet: empty history until someone creates it
            self._room_watch = await self.feed.watch_opportunity(self.opportunity_id, self._on_room_created)
            room = await self.room_resolver.find_room(self.opportunity_id)
            if room is None:
                return
        await self._attach_room(room.id)

    async def _on_room_created(self, room_id: str) -> None:
        await self._attach_room(room_id)

    async def _attach_room(self, room_id: str) -> None:
        async with self._attach_lock:
            if self._subscription is not None or self.state not in (SessionState.LOADING, SessionState.READY):
                return
            await self._subscribe_room(room_id)
        watch, self._room_watch = self._room_watch, None
        await self.feed.unsubscribe(watch)

    async def _subscribe_room(self, room_id: str) -> None:
        actor = self._require_actor()
        self.room_id = room_id

        history = await self.message_store.list_enriched_messages(room_id, self.owner_id, actor.id)
        for message in history:
            self._remember_sender(message)
            self._insert(message)
        self.unread_count = self._count_recent_unread()

        self._subscription = await self.feed.subscribe(room_id, self._on_insert)

        # Anything stored between the history query and the subscription
        for message in await self.message_store.list_enriched_messages(room_id, self.owner_id, actor.id):
            if message.id in self._message_ids:
                continue
            self._remember_sender(message)
            self._insert(message)
            if self._is_unread_candidate(message):
                self.unread_count += 1

    async def send(self, body: str) -> ChatMessageRecord:
        """Store a message from the actor.

        The local view is not touched here: the stored row comes back
        through the change feed. Failures leave the session ready so the
        caller can resend the same text.
        """
        actor = self._require_actor()
        text = self.message_store.validate_body(body)
        if self.state is not SessionState.READY:
            raise ChatError(f"Chat session for opportunity {self.opportunity_id} is not ready")

        self.is_sending = True
        try:
            room_id = await self.room_resolver.resolve_or_create_room(self.opportunity_id)
            if self._subscription is None:
                await self._attach_room(room_id)
            return await self.message_store.append_message(room_id, actor.id, text)
        except ChatError as exc:
            logger.warning(
                "Sending to opportunity %s failed: %s",
                self.opportunity_id,
                exc.__class__.__name__,
            )
            raise
        finally:
            self.is_sending = False

    async def _on_insert(self, record: ChatMessageRecord) -> None:
        if record.id in self._message_ids or self._subscription is None:
            return
        actor = self._require_actor()
        name = await self._display_name(record.sender_id)
        if record.id in self._message_ids or self._subscription is None:
            return

        message = enrich_message(record, name, self.owner_id, actor.id)
        self._insert(message)

        if self.state is not SessionState.READY:
            # Still loading: the message is part of the snapshot open() hands back
            if self._is_unread_candidate(message):
                self.unread_count += 1
            return

        if message.sender_id != actor.id and not self.foreground:
            self.unread_count += 1
            await self.notifications.notify(
                ChatNotification(
                    opportunity_id=self.opportunity_id,
                    sender_display_name=message.sender_display_name,
                    body=message.message,
                    created_at=message.created_at,
                )
            )
        if self.on_message is not None:
            await self.on_message(message)

    async def _display_name(self, sender_id: Optional[str]) -> str:
        if not sender_id:
            return UNKNOWN_USER
        if sender_id not in self._display_names:
            names = await self.message_store.display_names([sender_id])
            self._display_names[sender_id] = names.get(sender_id, UNKNOWN_USER)
        return self._display_names[sender_id]

    def _remember_sender(self, message: ChatMessageView) -> None:
        if message.sender_id:
            self._display_names.setdefault(message.sender_id, message.sender_display_name)

    def _insert(self, message: ChatMessageView) -> None:
        if message.id in self._message_ids:
            return
        bisect.insort(self._messages, message, key=_sort_key)
        self._message_ids.add(message.id)

    def _is_unread_candidate(self, message: ChatMessageView) -> bool:
        cutoff = self.clock() - self.unread_window
        return message.sender_id != self.actor.id and message.created_at > cutoff

    def _count_recent_unread(self) -> int:
        return sum(1 for message in self._messages if self._is_unread_candidate(message))

    def mark_as_read(self) -> None:
        self.unread_count = 0
        self._messages = [
            message if message.is_read else message.model_copy(update={"is_read": True})
            for message in self._messages
        ]

    def set_foreground(self, visible: bool) -> None:
        self.foreground = visible
        if visible and self.unread_count > 0:
            self.mark_as_read()

    async def close(self) -> None:
        await self._teardown()
        self._reset_view()
        self.state = SessionState.IDLE

    def _reset_view(self) -> None:
        self._messages = []
        self._message_ids = set()
        self._display_names = {}
        self.unread_count = 0
        self.is_sending = False
        self.room_id = None
        self.opportunity = None

    async def _teardown(self) -> None:
        async with self._attach_lock:
            subscription, self._subscription = self._subscription, None
            watch, self._room_watch = self._room_watch, None
        await self.feed.unsubscribe(subscription)
        await self.feed.unsubscribe(watch)

    def snapshot(self) -> ChatSessionView:
        return ChatSessionView(
            opportunity_id=self.opportunity_id,
            opportunity_title=self.opportunity.title if self.opportunity else None,
            room_id=self.room_id,
            state=self.state,
            is_sending=self.is_sending,
            unread_count=self.unread_count,
            messages=self.messages,
        )
