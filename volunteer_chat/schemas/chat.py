from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field

NOTIFICATION_PREVIEW_LENGTH = 50


class ChatMessageCreate(BaseModel):
    text: str


class ChatRoomResponse(BaseModel):
    id: str
    opportunity_id: str = Field(alias="opportunityId")
    created_at: datetime = Field(alias="createdAt")

    model_config = {
        "from_attributes": True,
        "populate_by_name": True,
    }


class ChatMessageRecord(BaseModel):
    """A stored chat message as it comes out of ``chat_messages``."""

    id: str
    chat_room_id: str = Field(alias="chatRoomId")
    sender_id: Optional[str] = Field(default=None, alias="senderId")
    message: str
    is_system_message: bool = Field(default=False, alias="isSystemMessage")
    created_at: datetime = Field(alias="createdAt")

    model_config = {
        "from_attributes": True,
        "populate_by_name": True,
        "frozen": True,
    }

    @property
    def sort_key(self) -> tuple:
        return (self.created_at, self.id)


class ChatMessageView(ChatMessageRecord):
    sender_display_name: str = Field(default="Unknown User", alias="senderName")
    is_from_opportunity_owner: bool = Field(default=False, alias="isFromOpportunityOwner")
    is_read: bool = Field(default=True, alias="isRead")


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class ChatSessionView(BaseModel):
    opportunity_id: str = Field(alias="opportunityId")
    opportunity_title: Optional[str] = Field(default=None, alias="opportunityTitle")
    room_id: Optional[str] = Field(default=None, alias="roomId")
    state: SessionState
    is_sending: bool = Field(default=False, alias="isSending")
    unread_count: int = Field(default=0, alias="unreadCount")
    messages: List[ChatMessageView] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class ChatNotification(BaseModel):
    opportunity_id: str = Field(alias="opportunityId")
    sender_display_name: str = Field(alias="senderName")
    body: str
    created_at: datetime = Field(alias="createdAt")

    model_config = {"populate_by_name": True}

    @computed_field(return_type=str)
    def title(self) -> str:
        return f"New message from {self.sender_display_name}"

    @computed_field(return_type=str)
    def preview(self) -> str:
        if len(self.body) > NOTIFICATION_PREVIEW_LENGTH:
            return f"{self.body[:NOTIFICATION_PREVIEW_LENGTH]}..."
        return self.body
