from pydantic import Field

from chatvault.core.database import ConversationType
from chatvault.core.dto import UtcDateTime
from .api_models import CamelModel


class ConversationCreateRequest(CamelModel):
    conversation_id: str = Field(..., min_length=1, max_length=255)
    name: str | None = None
    type: ConversationType = ConversationType.DIRECT
    participant_ids: list[str] = Field(default_factory=list)


class AddParticipantRequest(CamelModel):
    user_id: str = Field(..., min_length=1)


class ParticipantResponse(CamelModel):
    id: str
    display_name: str | None = None
    avatar_url: str | None = None
    role: int | None = None
    joined_at: UtcDateTime | None = None


class ConversationResponse(CamelModel):
    id: str
    name: str | None = None
    type: int
    created_at: UtcDateTime
    updated_at: UtcDateTime
    last_message_id: str | None = None
    last_message_at: UtcDateTime | None = None
    participants: list[ParticipantResponse] | None = None
    other_participant: ParticipantResponse | None = None


class ConversationListResponse(CamelModel):
    conversations: list[ConversationResponse]
    total: int
    has_more: bool
