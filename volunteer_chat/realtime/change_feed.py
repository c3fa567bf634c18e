from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from volunteer_chat.schemas.chat import ChatMessageRecord

logger = logging.getLogger(__name__)

InsertHandler = Callable[[ChatMessageRecord], Awaitable[None]]
RoomCreatedHandler = Callable[[str], Awaitable[None]]


def _opportunity_key(opportunity_id: str) -> str:
    return f"opportunity:{opportunity_id}"


class Subscription:
    """A live registration on one feed key.

    Keys are chat room ids (message inserts) or ``opportunity:<id>`` (room
    creation). Delivery is at-least-once and carries no ordering guarantee,
    so handlers must de-duplicate.
    """

    def __init__(self, feed: "ChangeFeed", key: str, handler: Callable[[Any], Awaitable[None]]) -> None:
        self.feed = feed
        self.key = key
        self.handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    async def deliver(self, event: Any) -> None:
        if not self._active:
            return
        await self.handler(event)

    async def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        await self.feed._discard(self)

    def __repr__(self) -> str:
        state = "active" if self._active else "cancelled"
        return f"<Subscription {self.key} {state}>"


class ChangeFeed:
    """In-process broker pushing chat inserts and room creations to subscribers."""

    def __init__(self) -> None:
        self._subscriptions: Dict[str, Set[Subscription]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, room_id: str, on_insert: InsertHandler) -> Subscription:
        return await self._register(room_id, on_insert)

    async def watch_opportunity(self, opportunity_id: str, on_room_created: RoomCreatedHandler) -> Subscription:
        return await self._register(_opportunity_key(opportunity_id), on_room_created)

    async def unsubscribe(self, subscription: Optional[Subscription]) -> None:
        if subscription is None:
            return
        await subscription.cancel()

    async def publish(self, room_id: str, message: ChatMessageRecord) -> None:
        await self._dispatch(room_id, message)

    async def publish_room_created(self, opportunity_id: str, room_id: str) -> None:
        await self._dispatch(_opportunity_key(opportunity_id), room_id)

    def subscriber_count(self, key: Optional[str] = None) -> int:
        if key is not None:
            return len(self._subscriptions.get(key, ()))
        return sum(len(subs) for subs in self._subscriptions.values())

    async def _register(self, key: str, handler: Callable[[Any], Awaitable[None]]) -> Subscription:
        subscription = Subscription(self, key, handler)
        async with self._lock:
            self._subscriptions.setdefault(key, set()).add(subscription)
        logger.debug("Subscribed to %s", key)
        return subscription

    async def _discard(self, subscription: Subscription) -> None:
        async with self._lock:
            subs = self._subscriptions.get(subscription.key)
            if not subs:
                return
            subs.discard(subscription)
            if not subs:
                self._subscriptions.pop(subscription.key, None)
        logger.debug("Unsubscribed from %s", subscription.key)

    async def _snapshot(self, key: str) -> List[Subscription]:
        async with self._lock:
            subs = self._subscriptions.get(key)
            return list(subs) if subs else []

    async def _dispatch(self, key: str, event: Any) -> None:
        for subscription in await self._snapshot(key):
            try:
                await subscription.deliver(event)
            except Exception:  # noqa: BLE001
                logger.exception("Chat feed subscriber failed for %s", key)


change_feed = ChangeFeed()
