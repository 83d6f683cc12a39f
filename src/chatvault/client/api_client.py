from datetime import datetime
import logging

import httpx

from chatvault.services.models import (
    MessageResponse, MessageListResponse,
    ConversationResponse, ConversationListResponse,
    UserResponse,
)
from .errors import error_from_response


class ChatApiClient:
    """
    Async HTTP client for the chat API.

    The caller is identified by the X-User-Id header, or by a bearer token when one is given.
    Responses are parsed into the same camelCase models the server emits.
    """

    def __init__(
            self,
            base_url: str,
            user_id: str,
            token: str | None = None,
            timeout: float = 10.0,
            transport: httpx.AsyncBaseTransport | None = None,
            logger: logging.Logger | None = None
    ):
        self.user_id = user_id
        self.logger = logger or logging.getLogger(__name__)

        headers = {"X-User-Id": user_id}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport
        )

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            error = error_from_response(response)
            self.logger.debug("%s %s failed: %s", method, path, error)
            raise error
        return response

    async def send_message(
            self,
            conversation_id: str,
            text: str,
            created_at: datetime | None = None,
            reply_to_message_id: str | None = None
    ) -> MessageResponse:
        payload = {"conversationId": conversation_id, "text": text}
        if created_at is not None:
            payload["createdAt"] = created_at.isoformat()
        if reply_to_message_id is not None:
            payload["replyToMessageId"] = reply_to_message_id

        response = await self._request("POST", "/messages", json=payload)
        return MessageResponse.model_validate(response.json())

    async def get_messages(
            self,
            conversation_id: str,
            limit: int = 50,
            offset: int = 0,
            before: str | None = None,
            after: str | None = None
    ) -> MessageListResponse:
        params = {"limit": limit, "offset": offset}
        if before:
            params["before"] = before
        if after:
            params["after"] = after

        response = await self._request("GET", f"/conversations/{conversation_id}/messages", params=params)
        return MessageListResponse.model_validate(response.json())

    async def edit_message(self, message_id: str, text: str) -> MessageResponse:
        response = await self._request("PUT", f"/messages/{message_id}", json={"text": text})
        return MessageResponse.model_validate(response.json())

    async def delete_message(self, message_id: str):
        await self._request("DELETE", f"/messages/{message_id}")

    async def create_conversation(
            self,
            conversation_id: str,
            participant_ids: list[str] | None = None,
            name: str | None = None,
            conversation_type: int = 1
    ) -> ConversationResponse:
        payload = {
            "conversationId": conversation_id,
            "name": name,
            "type": conversation_type,
            "participantIds": participant_ids or [],
        }
        response = await self._request("POST", "/conversations", json=payload)
        return ConversationResponse.model_validate(response.json())

    async def list_conversations(self, limit: int = 20, offset: int = 0) -> ConversationListResponse:
        response = await self._request("GET", "/conversations", params={"limit": limit, "offset": offset})
        return ConversationListResponse.model_validate(response.json())

    async def create_user(
            self,
            user_id: str,
            username: str,
            display_name: str | None = None
    ) -> UserResponse:
        payload = {"id": user_id, "username": username, "displayName": display_name}
        response = await self._request("POST", "/users", json=payload)
        return UserResponse.model_validate(response.json())

    async def get_user(self, user_id: str) -> UserResponse:
        response = await self._request("GET", f"/users/{user_id}")
        return UserResponse.model_validate(response.json())
