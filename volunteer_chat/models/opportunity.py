from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from volunteer_chat.core.clock import new_id, utcnow
from volunteer_chat.core.database import Base
from volunteer_chat.models.profile import Profile


class Opportunity(Base):
    __tablename__ = "opportunities"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    organization = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    created_by = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    owner = relationship(Profile)
