from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from volunteer_chat.core.clock import new_id, utcnow
from volunteer_chat.core.database import Base
from volunteer_chat.models.opportunity import Opportunity
from volunteer_chat.models.profile import Profile


class Application(Base):
    __tablename__ = "applications"

    id = Column(String(36), primary_key=True, default=new_id)
    opportunity_id = Column(
        String(36), ForeignKey("opportunities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(String(16), default="pending", nullable=False)  # pending | accepted | rejected
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    opportunity = relationship(Opportunity)
    user = relationship(Profile)
