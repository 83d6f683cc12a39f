from pydantic import BaseModel, Field, AfterValidator
from datetime import datetime, timezone
from typing import Annotated


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDateTime = Annotated[datetime, AfterValidator(_ensure_utc)]


class UserDTO(BaseModel):
    id: str
    username: str
    email: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    is_active: bool = True
    created_at: UtcDateTime
    updated_at: UtcDateTime


class ParticipantDTO(BaseModel):
    id: str
    display_name: str | None = None
    avatar_url: str | None = None
    role: int | None = None
    joined_at: UtcDateTime | None = None


class ConversationDTO(BaseModel):
    id: str
    name: str | None = None
    type: int
    created_at: UtcDateTime
    updated_at: UtcDateTime
    last_message_id: str | None = None
    last_message_at: UtcDateTime | None = None
    participants: list[ParticipantDTO] | None = None
    other_participant: ParticipantDTO | None = None


class ConversationPageDTO(BaseModel):
    conversations: list[ConversationDTO]
    total: int
    has_more: bool


class MessageDTO(BaseModel):
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


class MessagePageDTO(BaseModel):
    messages: list[MessageDTO]
    has_more: bool
    total: int


class MessageQuery(BaseModel):
    """ Read options for a conversation's messages """
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    before_message_id: str | None = None
    after_message_id: str | None = None
