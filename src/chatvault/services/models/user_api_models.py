from pydantic import Field

from chatvault.core.dto import UtcDateTime
from .api_models import CamelModel

USERNAME_PATTERN = r"^[A-Za-z0-9_-]{3,50}$"


class UserCreateRequest(CamelModel):
    id: str = Field(..., min_length=1, max_length=255)
    username: str = Field(..., pattern=USERNAME_PATTERN)
    email: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None


class UserUpdateRequest(CamelModel):
    username: str | None = Field(default=None, pattern=USERNAME_PATTERN)
    email: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    is_active: bool | None = None


class UserResponse(CamelModel):
    id: str
    username: str
    email: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    is_active: bool
    created_at: UtcDateTime
    updated_at: UtcDateTime


class UserListResponse(CamelModel):
    users: list[UserResponse]
    count: int
