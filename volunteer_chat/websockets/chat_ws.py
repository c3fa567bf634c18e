from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import async_sessionmaker

from volunteer_chat.core.dependencies import get_actor_by_id, get_change_feed, get_sessions
from volunteer_chat.core.exceptions import ChatError, NotFoundError, TransportError
from volunteer_chat.core.security import decode_subject
from volunteer_chat.realtime.change_feed import ChangeFeed
from volunteer_chat.schemas.chat import ChatMessageView, ChatNotification
from volunteer_chat.schemas.user import Actor
from volunteer_chat.services.chat_session import ChatSession
from volunteer_chat.services.message_store import serialize_message
from volunteer_chat.services.notifications import NotificationSink

logger = logging.getLogger(__name__)

router = APIRouter()

CLOSE_UNAUTHENTICATED = 4401
CLOSE_NOT_FOUND = 4404


class WebSocketNotificationSink(NotificationSink):
    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def notify(self, notification: ChatNotification) -> None:
        await self.websocket.send_json(
            {"type": "notification", "data": notification.model_dump(mode="json", by_alias=True)}
        )


async def _resolve_actor_from_token(token: Optional[str], sessions: async_sessionmaker) -> Optional[Actor]:
    subject = decode_subject(token)
    if subject is None:
        return None
    async with sessions() as session:
        return await get_actor_by_id(session, subject)


@router.websocket("/ws/opportunities/{opportunity_id}/chat")
async def opportunity_chat_websocket(
    websocket: WebSocket,
    opportunity_id: str,
    sessions: async_sessionmaker = Depends(get_sessions),
    feed: ChangeFeed = Depends(get_change_feed),
) -> None:
    await websocket.accept()
    session: Optional[ChatSession] = None

    async def push_message(message: ChatMessageView) -> None:
        await websocket.send_json(
            {
                "type": "message",
                "data": serialize_message(message),
                "unreadCount": session.unread_count if session else 0,
            }
        )

    try:
        init_payload = await websocket.receive_json()
        token = init_payload.get("token") if isinstance(init_payload, dict) else None
        actor = await _resolve_actor_from_token(token, sessions)
        if actor is None:
            await websocket.close(code=CLOSE_UNAUTHENTICATED)
            return

        session = ChatSession(
            opportunity_id,
            actor,
            session_factory=sessions,
            feed=feed,
            notifications=WebSocketNotificationSink(websocket),
            on_message=push_message,
            foreground=bool(init_payload.get("visible", True)),
        )
        try:
            await session.open()
        except NotFoundError:
            await websocket.close(code=CLOSE_NOT_FOUND)
            return
        except TransportError as exc:
            logger.warning("Chat load failed for opportunity %s: %s", opportunity_id, exc.__class__.__name__)
            await websocket.close(code=1011)
            return

        await websocket.send_json(
            {"type": "snapshot", "data": session.snapshot().model_dump(mode="json", by_alias=True)}
        )

        while True:
            data = await websocket.receive_json()
            if not isinstance(data, dict):
                continue
            kind = data.get("type")
            if kind == "send":
                text = data.get("text")
                try:
                    await session.send(str(text or ""))
                except ChatError as exc:
                    # Echo the text back so the client can keep it in the input
                    await websocket.send_json(
                        {
                            "type": "error",
                            "error": exc.__class__.__name__,
                            "detail": exc.message,
                            "text": text,
                        }
                    )
            elif kind == "read":
                session.mark_as_read()
                await websocket.send_json({"type": "unread", "unreadCount": session.unread_count})
            elif kind == "visibility":
                session.set_foreground(bool(data.get("visible")))
                await websocket.send_json({"type": "unread", "unreadCount": session.unread_count})
    except WebSocketDisconnect:
        pass
    except Exception:  # noqa: BLE001
        logger.exception("Opportunity chat websocket error")
        try:
            await websocket.close(code=1011)
        except Exception:  # noqa: BLE001
            pass
    finally:
        if session is not None:
            await session.close()
