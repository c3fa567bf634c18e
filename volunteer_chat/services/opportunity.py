from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from volunteer_chat.core.exceptions import NotFoundError, TransportError
from volunteer_chat.models.opportunity import Opportunity
from volunteer_chat.schemas.opportunity import OpportunityInfo


class OpportunityDirectory:
    """Read-only access to the opportunity fields the chat needs."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self.session_factory = session_factory

    async def get(self, opportunity_id: str) -> OpportunityInfo:
        try:
            async with self.session_factory() as db:
                opportunity = await db.get(Opportunity, opportunity_id)
        except SQLAlchemyError as exc:
            raise TransportError("Could not load opportunity") from exc
        if opportunity is None:
            raise NotFoundError(f"Opportunity {opportunity_id} does not exist")
        return OpportunityInfo.model_validate(opportunity)
