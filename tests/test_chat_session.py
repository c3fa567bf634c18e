import asyncio
import random
from datetime import timedelta

import pytest

from conftest import EMAIL_ONLY_ID, OPPORTUNITY_ID, OTHER_OPPORTUNITY_ID, OWNER_ID, VOLUNTEER_ID, minutes_ago
from volunteer_chat.core.clock import utcnow
from volunteer_chat.core.exceptions import (
    AuthenticationError,
    ChatError,
    LoadTimeoutError,
    NotFoundError,
    ValidationError,
)
from volunteer_chat.schemas.chat import SessionState
from volunteer_chat.services.chat_session import ChatSession
from volunteer_chat.services.opportunity import OpportunityDirectory


async def test_open_without_actor_stays_idle(seeded, feed):
    session = ChatSession(OPPORTUNITY_ID, None, session_factory=seeded, feed=feed)

    with pytest.raises(AuthenticationError):
        await session.open()
    assert session.state is SessionState.IDLE


async def test_open_unknown_opportunity_fails(seeded, feed, volunteer):
    session = ChatSession("missing", volunteer, session_factory=seeded, feed=feed)

    with pytest.raises(NotFoundError):
        await session.open()
    assert session.state is SessionState.FAILED
    assert feed.subscriber_count() == 0


async def test_opportunity_without_room_loads_empty(open_session, volunteer):
    session = await open_session(volunteer)

    assert session.state is SessionState.READY
    assert session.room_id is None
    assert session.messages == []
    assert session.unread_count == 0
    assert session.opportunity.title == "Beach clean-up"


async def test_history_is_enriched_and_unread_counted(open_session, create_room, insert_message, volunteer):
    room_id = await create_room()
    await insert_message(room_id, OWNER_ID, "old news", created_at=utcnow() - timedelta(days=3))
    await insert_message(room_id, OWNER_ID, "meet at the pier", created_at=minutes_ago(30))
    await insert_message(room_id, VOLUNTEER_ID, "ok", created_at=minutes_ago(20))
    await insert_message(room_id, EMAIL_ONLY_ID, "me too", created_at=minutes_ago(10))

    session = await open_session(volunteer)

    assert session.room_id == room_id
    assert [m.message for m in session.messages] == ["old news", "meet at the pier", "ok", "me too"]
    assert [m.is_from_opportunity_owner for m in session.messages] == [True, True, False, False]
    # Only messages from others inside the 24h window
    assert session.unread_count == 2


async def test_unread_window_is_configurable(open_session, create_room, insert_message, volunteer):
    room_id = await create_room()
    await insert_message(room_id, OWNER_ID, "an hour ago", created_at=minutes_ago(60))
    await insert_message(room_id, OWNER_ID, "just now", created_at=minutes_ago(1))

    session = await open_session(volunteer, unread_window=timedelta(minutes=30))

    assert session.unread_count == 1


async def test_whitespace_send_never_reaches_the_store(open_session, store, monkeypatch, volunteer):
    session = await open_session(volunteer)
    calls = []

    async def spy(*args, **kwargs):
        calls.append(args)

    monkeypatch.setattr(store, "append_message", spy)

    with pytest.raises(ValidationError):
        await session.send("   ")
    assert calls == []
    assert session.state is SessionState.READY
    assert session.is_sending is False


async def test_send_before_open_is_rejected(seeded, feed, volunteer):
    session = ChatSession(OPPORTUNITY_ID, volunteer, session_factory=seeded, feed=feed)

    with pytest.raises(ChatError):
        await session.send("hello")


async def test_first_send_creates_room_and_message_arrives_via_feed(open_session, volunteer):
    session = await open_session(volunteer)

    record = await session.send("Hi all")

    assert session.room_id == record.chat_room_id
    assert [m.id for m in session.messages] == [record.id]
    own = session.messages[0]
    assert own.is_read is True
    assert own.sender_display_name == "Uma"
    assert session.unread_count == 0


async def test_assignment_scenario(open_session, sink, volunteer, email_only, owner):
    """U2 has the chat open in the background when U1 starts the conversation."""
    listener = await open_session(email_only, notifications=sink)
    assert listener.room_id is None

    sender = await open_session(volunteer)
    record = await sender.send("Hello")

    assert record.message == "Hello"
    assert record.sender_id == VOLUNTEER_ID
    assert record.is_system_message is False
    assert listener.room_id == record.chat_room_id
    assert [m.message for m in listener.messages] == ["Hello"]
    assert listener.messages[0].is_from_opportunity_owner is False
    assert listener.messages[0].sender_display_name == "Uma"
    assert listener.messages[0].is_read is False
    assert listener.unread_count == 1
    assert len(sink.notifications) == 1
    assert sink.notifications[0].title == "New message from Uma"

    listener.mark_as_read()
    assert listener.unread_count == 0
    assert all(m.is_read for m in listener.messages)

    # The owner's view flags their own message and nobody else's
    owner_reply = await open_session(owner)
    await owner_reply.send("Welcome!")
    assert [m.is_from_opportunity_owner for m in listener.messages] == [False, True]


async def test_feed_order_and_duplicates_do_not_matter(open_session, create_room, feed, make_record, volunteer):
    room_id = await create_room()
    session = await open_session(volunteer)

    base = minutes_ago(5)
    records = [
        make_record(room_id, OWNER_ID, f"m{i}", created_at=base + timedelta(seconds=i // 2), message_id=f"id-{i:02d}")
        for i in range(10)
    ]
    deliveries = records + records[:4]
    random.Random(7).shuffle(deliveries)

    for record in deliveries:
        await feed.publish(room_id, record)

    assert [m.id for m in session.messages] == [r.id for r in records]
    assert session.unread_count == 10


async def test_foreground_session_does_not_count_or_notify(open_session, create_room, feed, make_record, sink, volunteer):
    room_id = await create_room()
    session = await open_session(volunteer, notifications=sink, foreground=True)

    await feed.publish(room_id, make_record(room_id, OWNER_ID, "hello"))

    assert session.unread_count == 0
    assert sink.notifications == []
    assert session.messages[0].is_read is False


async def test_returning_to_foreground_marks_read(open_session, create_room, feed, make_record, volunteer):
    room_id = await create_room()
    session = await open_session(volunteer)

    await feed.publish(room_id, make_record(room_id, OWNER_ID, "hello"))
    assert session.unread_count == 1

    session.set_foreground(True)

    assert session.unread_count == 0
    assert session.messages[0].is_read is True


async def test_notification_preview_is_truncated(open_session, create_room, feed, make_record, sink, volunteer):
    room_id = await create_room()
    await open_session(volunteer, notifications=sink)
    body = "x" * 80

    await feed.publish(room_id, make_record(room_id, EMAIL_ONLY_ID, body))

    notification = sink.notifications[0]
    assert notification.sender_display_name == "victor@example.com"
    assert notification.preview == "x" * 50 + "..."
    assert notification.body == body


async def test_events_for_other_rooms_are_ignored(open_session, create_room, feed, make_record, volunteer):
    await create_room(OPPORTUNITY_ID)
    other_room = await create_room(OTHER_OPPORTUNITY_ID)
    session = await open_session(volunteer)

    await feed.publish(other_room, make_record(other_room, OWNER_ID, "elsewhere"))

    assert session.messages == []
    assert session.unread_count == 0


async def test_listener_is_called_for_new_messages(open_session, create_room, feed, make_record, volunteer):
    room_id = await create_room()
    received = []

    async def on_message(message):
        received.append(message.id)

    await open_session(volunteer, on_message=on_message)
    record = make_record(room_id, OWNER_ID)
    await feed.publish(room_id, record)
    await feed.publish(room_id, record)

    assert received == [record.id]


async def test_reopen_gives_the_same_view(open_session, create_room, insert_message, volunteer):
    room_id = await create_room()
    await insert_message(room_id, OWNER_ID, "one", created_at=minutes_ago(3))
    await insert_message(room_id, VOLUNTEER_ID, "two", created_at=minutes_ago(2))

    session = await open_session(volunteer)
    first = session.snapshot()
    await session.close()
    await session.open()
    second = session.snapshot()

    assert [m.id for m in first.messages] == [m.id for m in second.messages]
    assert first.unread_count == second.unread_count == 1


async def test_close_unsubscribes_and_is_idempotent(open_session, create_room, feed, make_record, volunteer):
    room_id = await create_room()
    session = await open_session(volunteer)
    assert feed.subscriber_count(room_id) == 1

    await session.close()
    await session.close()

    assert session.state is SessionState.IDLE
    assert feed.subscriber_count() == 0
    await feed.publish(room_id, make_record(room_id, OWNER_ID))
    assert session.messages == []


async def test_close_drops_the_room_watch(open_session, feed, volunteer):
    session = await open_session(volunteer)
    assert feed.subscriber_count(f"opportunity:{OPPORTUNITY_ID}") == 1

    await session.close()

    assert feed.subscriber_count() == 0


async def test_context_manager_opens_and_closes(seeded, feed, create_room, volunteer):
    await create_room()
    async with ChatSession(OPPORTUNITY_ID, volunteer, session_factory=seeded, feed=feed) as session:
        assert session.state is SessionState.READY
    assert session.state is SessionState.IDLE
    assert feed.subscriber_count() == 0


class SlowDirectory:
    async def get(self, opportunity_id):
        await asyncio.sleep(5)


async def test_slow_load_times_out(seeded, feed, volunteer):
    session = ChatSession(
        OPPORTUNITY_ID,
        volunteer,
        session_factory=seeded,
        feed=feed,
        opportunities=SlowDirectory(),
        load_timeout=0.05,
    )

    with pytest.raises(LoadTimeoutError):
        await session.open()
    assert session.state is SessionState.FAILED
    assert feed.subscriber_count() == 0


async def test_failed_session_can_be_reopened(seeded, feed, volunteer):
    session = ChatSession(
        OPPORTUNITY_ID,
        volunteer,
        session_factory=seeded,
        feed=feed,
        opportunities=SlowDirectory(),
        load_timeout=0.05,
    )
    with pytest.raises(LoadTimeoutError):
        await session.open()

    session.opportunities = OpportunityDirectory(seeded)
    await session.open()
    assert session.state is SessionState.READY
    await session.close()


async def test_open_twice_is_rejected(open_session, volunteer):
    session = await open_session(volunteer)

    with pytest.raises(ChatError):
        await session.open()
    assert session.state is SessionState.READY


async def test_own_messages_keep_unread_at_zero_after_mark_as_read(open_session, create_room, feed, make_record, insert_message, volunteer):
    room_id = await create_room()
    await insert_message(room_id, OWNER_ID, "briefing", created_at=minutes_ago(5))
    session = await open_session(volunteer)
    assert session.unread_count == 1

    session.mark_as_read()
    await session.send("On my way")

    assert session.unread_count == 0
    assert [m.message for m in session.messages] == ["briefing", "On my way"]

    await feed.publish(room_id, make_record(room_id, OWNER_ID, "Thanks"))
    assert session.unread_count == 1


async def test_own_row_found_while_loading_is_not_unread(open_session, create_room, insert_message, store, monkeypatch, volunteer):
    room_id = await create_room()
    original = store.list_enriched_messages
    calls = []

    async def list_with_late_own_row(*args, **kwargs):
        calls.append(args)
        if len(calls) == 2:
            # Stored after the history query, before the subscription existed
            await insert_message(room_id, VOLUNTEER_ID, "late own row")
        return await original(*args, **kwargs)

    monkeypatch.setattr(store, "list_enriched_messages", list_with_late_own_row)
    session = await open_session(volunteer)

    assert [m.message for m in session.messages] == ["late own row"]
    assert session.unread_count == 0


async def test_messages_delivered_while_loading_reach_the_view_only(open_session, create_room, feed, make_record, store, sink, monkeypatch, volunteer):
    room_id = await create_room()
    record = make_record(room_id, OWNER_ID, "early bird", created_at=minutes_ago(1))
    original = store.list_enriched_messages
    calls = []
    received = []

    async def list_with_live_event(*args, **kwargs):
        calls.append(args)
        if len(calls) == 2:
            await feed.publish(room_id, record)
        return await original(*args, **kwargs)

    async def on_message(message):
        received.append(message.id)

    monkeypatch.setattr(store, "list_enriched_messages", list_with_live_event)
    session = await open_session(volunteer, notifications=sink, on_message=on_message)

    assert [m.id for m in session.messages] == [record.id]
    assert session.unread_count == 1
    assert received == []
    assert sink.notifications == []

    await feed.publish(room_id, make_record(room_id, OWNER_ID, "after open"))
    assert len(received) == 1
    assert len(sink.notifications) == 1
