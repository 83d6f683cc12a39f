from fastapi import APIRouter, status, HTTPException
from dishka.integrations.fastapi import inject
from dishka import FromDishka
import logging

from ..models.user_api_models import *
from chatvault.core.gateways import UserGateway


class UserAPI:
    """
    User registration and lookup. Users are never deleted; PUT with isActive=false deactivates.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

        self._user_router = APIRouter(prefix="/users", tags=["Users"])
        self._register_endpoints()

    @property
    def user_router(self) -> APIRouter:
        return self._user_router

    def get_router(self) -> APIRouter:
        return self._user_router

    def _register_endpoints(self):
        @self.user_router.post("", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
        @inject
        async def create_user(
                user_data: UserCreateRequest,
                user_gateway: FromDishka[UserGateway]
        ):
            user = await user_gateway.create_user(
                user_id=user_data.id,
                username=user_data.username,
                email=user_data.email,
                display_name=user_data.display_name,
                avatar_url=user_data.avatar_url
            )
            self.logger.info("New user registered: %s (ID: %s)", user.username, user.id)
            return UserResponse.model_validate(user.model_dump())

        @self.user_router.get("", response_model=UserListResponse)
        @inject
        async def list_users(
                user_gateway: FromDishka[UserGateway],
                limit: int = 100
        ):
            users = await user_gateway.get_active_users(max(1, min(limit, 200)))
            return UserListResponse(
                users=[UserResponse.model_validate(u.model_dump()) for u in users],
                count=len(users)
            )

        @self.user_router.get("/search", response_model=UserListResponse)
        @inject
        async def search_users(
                user_gateway: FromDishka[UserGateway],
                q: str = "",
                limit: int = 20
        ):
            query = q.strip()
            if len(query) < 2:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Search query must be at least 2 characters"
                )

            users = await user_gateway.search_users(query, max(1, min(limit, 100)))
            return UserListResponse(
                users=[UserResponse.model_validate(u.model_dump()) for u in users],
                count=len(users)
            )

        @self.user_router.get("/{user_id}", response_model=UserResponse)
        @inject
        async def get_user(
                user_id: str,
                user_gateway: FromDishka[UserGateway]
        ):
            user = await user_gateway.get_user_by_id(user_id)
            if not user:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="User not found"
                )
            return UserResponse.model_validate(user.model_dump())

        @self.user_router.put("/{user_id}", response_model=UserResponse)
        @inject
        async def update_user(
                user_id: str,
                user_data: UserUpdateRequest,
                user_gateway: FromDishka[UserGateway]
        ):
            user = await user_gateway.update_user(user_id, user_data.model_dump(exclude_unset=True))
            return UserResponse.model_validate(user.model_dump())
