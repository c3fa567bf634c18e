from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from volunteer_chat.core.config import settings
from volunteer_chat.core.exceptions import AuthenticationError, NotFoundError, TransportError, ValidationError
from volunteer_chat.models.application import Application
from volunteer_chat.schemas.opportunity import ApplicationStatusResult
from volunteer_chat.schemas.user import Actor
from volunteer_chat.services.room_resolver import RoomResolver

logger = logging.getLogger(__name__)

DECISION_STATUSES = ("accepted", "rejected")


class ApplicationService:
    """Accepts or rejects volunteer applications for an opportunity."""

    def __init__(self, session_factory: async_sessionmaker, room_resolver: RoomResolver) -> None:
        self.session_factory = session_factory
        self.room_resolver = room_resolver

    async def update_status(
        self,
        opportunity_id: str,
        application_ids: Iterable[str],
        status: str,
        actor: Optional[Actor],
    ) -> ApplicationStatusResult:
        """Set ``status`` on the given applications.

        Accepting volunteers makes sure the opportunity has a group chat. If
        the room is new, it opens with a system message announcing the
        assignment, attributed to ``actor``.
        """
        if actor is None or not actor.id:
            raise AuthenticationError("A signed-in user is required to manage applications")
        if status not in DECISION_STATUSES:
            raise ValidationError(f"Unsupported application status: {status}")
        ids = list(dict.fromkeys(application_ids))
        if not ids:
            raise ValidationError("No applications selected")

        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(Application).where(
                        Application.opportunity_id == opportunity_id,
                        Application.id.in_(ids),
                    )
                )
                applications = list(result.scalars())
                found = {application.id for application in applications}
                missing = [application_id for application_id in ids if application_id not in found]
                if missing:
                    raise NotFoundError(
                        f"Applications not found for opportunity {opportunity_id}: {', '.join(missing)}"
                    )
                for application in applications:
                    application.status = status
                await db.commit()
        except SQLAlchemyError as exc:
            raise TransportError("Could not update applications") from exc

        room_id = None
        if status == "accepted":
            room_id = await self.room_resolver.resolve_or_create_room(
                opportunity_id,
                announcement=settings.CHAT_ASSIGNMENT_MESSAGE,
                announced_by=actor.id,
            )

        logger.info(
            "%d application(s) %s for opportunity %s",
            len(applications),
            status,
            opportunity_id,
        )
        return ApplicationStatusResult(status=status, count=len(applications), room_id=room_id)
