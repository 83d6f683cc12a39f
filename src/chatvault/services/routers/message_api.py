from fastapi import APIRouter, status, Depends
from dishka.integrations.fastapi import inject
from dishka import FromDishka
import logging

from ..models.message_api_models import *
from ..rate_limit import RateLimitGuard
from chatvault.core.dto import MessageQuery
from chatvault.core.exceptions import ValidationFailed
from chatvault.core.gateways import MessageGateway
from .auth_api import AuthAPI

MAX_PAGE_SIZE = 100


class MessageAPI:
    """
    Message endpoints. Clients send and receive plaintext; encryption happens in the gateway.

    New messages are delivered by clients polling GET /conversations/{id}/messages with the
    "after" cursor.

    Attributes:
        logger: Logger instance for tracking operations
        auth_api: Authentication API instance for caller resolution
        rate_limits: general and message specific rate limit dependencies
    """

    def __init__(
            self,
            logger: logging.Logger,
            auth_api: AuthAPI,
            rate_limits: RateLimitGuard
    ):
        self.logger = logger
        self.auth_api = auth_api
        self.rate_limits = rate_limits

        self._message_router = APIRouter(tags=["Messages"])
        self._register_endpoints()

    @property
    def message_router(self) -> APIRouter:
        return self._message_router

    def get_router(self) -> APIRouter:
        return self._message_router

    def _register_endpoints(self):
        @self.message_router.post(
            "/messages",
            status_code=status.HTTP_201_CREATED,
            response_model=MessageResponse,
            dependencies=[Depends(self.rate_limits.messages)]
        )
        @inject
        async def send_message(
                message_data: MessageSendRequest,
                message_gateway: FromDishka[MessageGateway],
                sender_id: str = Depends(self.auth_api.current_user)
        ):
            """
            Send a plaintext message; it is encrypted before it is stored.

            Raises:
                NotAuthorized: sender is not an active participant (403)
            """
            if not message_data.text.strip():
                raise ValidationFailed("Invalid message format", required=["conversationId", "text"])

            message = await message_gateway.send_message(
                conversation_id=message_data.conversation_id,
                sender_id=sender_id,
                text=message_data.text,
                created_at=message_data.created_at,
                reply_to_message_id=message_data.reply_to_message_id
            )
            return MessageResponse.model_validate(message.model_dump())

        @self.message_router.get(
            "/conversations/{conversation_id}/messages",
            response_model=MessageListResponse
        )
        @inject
        async def get_messages(
                conversation_id: str,
                message_gateway: FromDishka[MessageGateway],
                limit: int = 50,
                offset: int = 0,
                before: str | None = None,
                after: str | None = None,
                user_id: str = Depends(self.auth_api.current_user)
        ):
            """
            Page through a conversation's messages in chronological order.

            Args:
                limit: page size, clamped to 1..100
                offset: rows to skip
                before: only messages created before this message id
                after: only messages created after this message id (polling cursor)
            """
            query = MessageQuery(
                limit=max(1, min(limit, MAX_PAGE_SIZE)),
                offset=max(0, offset),
                before_message_id=before,
                after_message_id=after
            )
            page = await message_gateway.get_messages(conversation_id, user_id, query)
            return MessageListResponse.model_validate(page.model_dump())

        @self.message_router.put("/messages/{message_id}", response_model=MessageResponse)
        @inject
        async def edit_message(
                message_id: str,
                edit_data: MessageEditRequest,
                message_gateway: FromDishka[MessageGateway],
                sender_id: str = Depends(self.auth_api.current_user)
        ):
            message = await message_gateway.edit_message(message_id, sender_id, edit_data.text)
            return MessageResponse.model_validate(message.model_dump())

        @self.message_router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
        @inject
        async def delete_message(
                message_id: str,
                message_gateway: FromDishka[MessageGateway],
                sender_id: str = Depends(self.auth_api.current_user)
        ):
            await message_gateway.delete_message(message_id, sender_id)
