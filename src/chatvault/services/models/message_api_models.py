from pydantic import Field
from datetime import datetime

from chatvault.core.dto import UtcDateTime
from .api_models import CamelModel


class MessageSendRequest(CamelModel):
    conversation_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    created_at: datetime | None = None
    reply_to_message_id: str | None = None


class MessageEditRequest(CamelModel):
    text: str = Field(..., min_length=1)


class MessageResponse(CamelModel):
    id: str
    conversation_id: str
    sender_id: str
    text: str
    created_at: UtcDateTime
    edited_at: UtcDateTime | None = None
    deleted_at: UtcDateTime | None = None
    reply_to_message_id: str | None = None
    sender_name: str | None = None
    sender_avatar: str | None = None


class MessageListResponse(CamelModel):
    messages: list[MessageResponse]
    has_more: bool
    total: int
