from sqlalchemy import Column, DateTime, String

from volunteer_chat.core.clock import new_id, utcnow
from volunteer_chat.core.database import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
