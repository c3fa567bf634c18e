from datetime import datetime, timedelta
from typing import List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from volunteer_chat.core.clock import new_id, utcnow
from volunteer_chat.core.database import build_engine
from volunteer_chat.core.init_db import create_tables
from volunteer_chat.models.application import Application
from volunteer_chat.models.chat import ChatMessage, ChatRoom
from volunteer_chat.models.opportunity import Opportunity
from volunteer_chat.models.profile import Profile
from volunteer_chat.realtime.change_feed import ChangeFeed
from volunteer_chat.schemas.chat import ChatMessageRecord
from volunteer_chat.schemas.user import Actor
from volunteer_chat.services.chat_session import ChatSession
from volunteer_chat.services.message_store import MessageStore
from volunteer_chat.services.notifications import CollectingNotificationSink
from volunteer_chat.services.room_resolver import RoomResolver

OWNER_ID = "N1"
VOLUNTEER_ID = "U1"
EMAIL_ONLY_ID = "U2"
LOCAL_DOMAIN_ID = "L1"
OPPORTUNITY_ID = "OPP-1"
OTHER_OPPORTUNITY_ID = "OPP-2"


@pytest.fixture
async def engine(tmp_path):
    # TestClient runs the app on its own event loop, so connections are never shared
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}", poolclass=NullPool)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def store(sessions, feed):
    return MessageStore(sessions, feed)


@pytest.fixture
def resolver(sessions, store):
    return RoomResolver(sessions, store)


@pytest.fixture
def sink():
    return CollectingNotificationSink()


@pytest.fixture
async def seeded(sessions):
    async with sessions() as db:
        db.add_all(
            [
                Profile(id=OWNER_ID, email="nora@example.com", first_name="Nora", last_name="Owens"),
                Profile(id=VOLUNTEER_ID, email="uma@example.com", first_name="Uma"),
                Profile(id=EMAIL_ONLY_ID, email="victor@example.com"),
                Profile(id=LOCAL_DOMAIN_ID, email="coordinator@shelter.local", first_name="Cora"),
            ]
        )
        await db.flush()
        db.add_all(
            [
                Opportunity(id=OPPORTUNITY_ID, title="Beach clean-up", created_by=OWNER_ID),
                Opportunity(id=OTHER_OPPORTUNITY_ID, title="Food bank shift", created_by=OWNER_ID),
            ]
        )
        await db.flush()
        db.add_all(
            [
                Application(id="APP-1", opportunity_id=OPPORTUNITY_ID, user_id=VOLUNTEER_ID),
                Application(id="APP-2", opportunity_id=OPPORTUNITY_ID, user_id=EMAIL_ONLY_ID),
            ]
        )
        await db.commit()
    return sessions


@pytest.fixture
def owner():
    return Actor(id=OWNER_ID, email="nora@example.com", first_name="Nora", last_name="Owens")


@pytest.fixture
def volunteer():
    return Actor(id=VOLUNTEER_ID, email="uma@example.com", first_name="Uma")


@pytest.fixture
def email_only():
    return Actor(id=EMAIL_ONLY_ID, email="victor@example.com")


@pytest.fixture
def create_room(seeded):
    """Insert a room row directly, bypassing the resolver."""

    async def _create(opportunity_id: str = OPPORTUNITY_ID) -> str:
        room_id = new_id()
        async with seeded() as db:
            db.add(ChatRoom(id=room_id, opportunity_id=opportunity_id, created_at=utcnow()))
            await db.commit()
        return room_id

    return _create


@pytest.fixture
def insert_message(seeded):
    """Insert a message row with a chosen id and timestamp."""

    async def _insert(
        room_id: str,
        sender_id: Optional[str],
        text: str,
        created_at: Optional[datetime] = None,
        message_id: Optional[str] = None,
        is_system_message: bool = False,
    ) -> ChatMessageRecord:
        message = ChatMessage(
            id=message_id or new_id(),
            chat_room_id=room_id,
            sender_id=sender_id,
            message=text,
            is_system_message=is_system_message,
            created_at=created_at or utcnow(),
        )
        async with seeded() as db:
            db.add(message)
            record = ChatMessageRecord.model_validate(message)
            await db.commit()
        return record

    return _insert


@pytest.fixture
def make_record():
    def _make(
        room_id: str,
        sender_id: Optional[str],
        text: str = "hello",
        created_at: Optional[datetime] = None,
        message_id: Optional[str] = None,
    ) -> ChatMessageRecord:
        return ChatMessageRecord(
            id=message_id or new_id(),
            chat_room_id=room_id,
            sender_id=sender_id,
            message=text,
            created_at=created_at or utcnow(),
        )

    return _make


@pytest.fixture
async def open_session(seeded, feed, store, resolver):
    """Open chat sessions wired to the test database; all are closed afterwards."""
    opened: List[ChatSession] = []

    async def _open(actor, opportunity_id: str = OPPORTUNITY_ID, **kwargs) -> ChatSession:
        session = ChatSession(
            opportunity_id,
            actor,
            session_factory=seeded,
            feed=feed,
            message_store=store,
            room_resolver=resolver,
            **kwargs,
        )
        opened.append(session)
        return await session.open()

    yield _open

    for session in opened:
        await session.close()


def minutes_ago(minutes: int) -> datetime:
    return utcnow() - timedelta(minutes=minutes)
