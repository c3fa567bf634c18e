from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from volunteer_chat.core.clock import new_id, utcnow
from volunteer_chat.core.database import Base
from volunteer_chat.models.opportunity import Opportunity
from volunteer_chat.models.profile import Profile


class ChatRoom(Base):
    __tablename__ = "chat_rooms"

    id = Column(String(36), primary_key=True, default=new_id)
    # One room per opportunity; concurrent creators race on this constraint
    opportunity_id = Column(
        String(36), ForeignKey("opportunities.id"), unique=True, nullable=False
    )
    created_at = Column(DateTime, default=utcnow, nullable=False)

    opportunity = relationship(Opportunity)
    messages = relationship("ChatMessage", back_populates="room")


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=new_id)
    chat_room_id = Column(String(36), ForeignKey("chat_rooms.id"), nullable=False, index=True)
    sender_id = Column(String(36), ForeignKey("profiles.id"), nullable=True)
    message = Column(Text, nullable=False)
    is_system_message = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    room = relationship(ChatRoom, back_populates="messages")
    sender = relationship(Profile)
