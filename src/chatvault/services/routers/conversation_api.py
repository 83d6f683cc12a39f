from fastapi import APIRouter, status, Depends
from dishka.integrations.fastapi import inject
from dishka import FromDishka
import logging

from ..models.conversation_api_models import *
from chatvault.core.gateways import ConversationGateway
from .auth_api import AuthAPI


class ConversationAPI:
    """
    Conversation creation, listing and membership.

    Attributes:
        logger: Logger instance for tracking operations
        auth_api: Authentication API instance for caller resolution
    """

    def __init__(
            self,
            logger: logging.Logger,
            auth_api: AuthAPI
    ):
        self.logger = logger
        self.auth_api = auth_api

        self._conversation_router = APIRouter(prefix="/conversations", tags=["Conversations"])
        self._register_endpoints()

    @property
    def conversation_router(self) -> APIRouter:
        return self._conversation_router

    def get_router(self) -> APIRouter:
        return self._conversation_router

    def _register_endpoints(self):
        @self.conversation_router.get("", response_model=ConversationListResponse)
        @inject
        async def list_conversations(
                conversation_gateway: FromDishka[ConversationGateway],
                limit: int = 20,
                offset: int = 0,
                user_id: str = Depends(self.auth_api.current_user)
        ):
            """
            Conversations the caller is active in, most recently active first.
            """
            page = await conversation_gateway.get_user_conversations(
                user_id,
                limit=max(1, min(limit, 100)),
                offset=max(0, offset)
            )
            return ConversationListResponse.model_validate(page.model_dump())

        @self.conversation_router.post(
            "",
            status_code=status.HTTP_201_CREATED,
            response_model=ConversationResponse
        )
        @inject
        async def create_conversation(
                conversation_data: ConversationCreateRequest,
                conversation_gateway: FromDishka[ConversationGateway],
                creator_id: str = Depends(self.auth_api.current_user)
        ):
            """
            Create a conversation with its initial participants in one transaction.

            Raises:
                Conflict: conversation id already exists (409)
            """
            conversation = await conversation_gateway.create_conversation(
                conversation_id=conversation_data.conversation_id,
                creator_id=creator_id,
                name=conversation_data.name,
                conversation_type=conversation_data.type,
                participant_ids=conversation_data.participant_ids
            )
            return ConversationResponse.model_validate(conversation.model_dump())

        @self.conversation_router.get("/{conversation_id}", response_model=ConversationResponse)
        @inject
        async def get_conversation(
                conversation_id: str,
                conversation_gateway: FromDishka[ConversationGateway],
                user_id: str = Depends(self.auth_api.current_user)
        ):
            conversation = await conversation_gateway.get_conversation(conversation_id, user_id)
            return ConversationResponse.model_validate(conversation.model_dump())

        @self.conversation_router.post(
            "/{conversation_id}/participants",
            response_model=ConversationResponse
        )
        @inject
        async def add_participant(
                conversation_id: str,
                participant_data: AddParticipantRequest,
                conversation_gateway: FromDishka[ConversationGateway],
                user_id: str = Depends(self.auth_api.current_user)
        ):
            conversation = await conversation_gateway.add_participant(
                conversation_id, user_id, participant_data.user_id
            )
            return ConversationResponse.model_validate(conversation.model_dump())

        @self.conversation_router.post("/{conversation_id}/leave")
        @inject
        async def leave_conversation(
                conversation_id: str,
                conversation_gateway: FromDishka[ConversationGateway],
                user_id: str = Depends(self.auth_api.current_user)
        ):
            await conversation_gateway.leave_conversation(conversation_id, user_id)
            return {"status": "left"}
