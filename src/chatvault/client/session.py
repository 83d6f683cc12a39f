import logging

import httpx

from chatvault.services.models import MessageResponse
from .api_client import ChatApiClient
from .errors import ApiError
from .poller import MessagePoller
from .timeline import MessageTimeline


class ChatSession:
    """
    An open conversation view: history, optimistic sends and background polling.
    """

    def __init__(
            self,
            client: ChatApiClient,
            conversation_id: str,
            history_limit: int = 50,
            poll_interval: float = 5.0,
            logger: logging.Logger | None = None
    ):
        self.client = client
        self.conversation_id = conversation_id
        self.history_limit = history_limit
        self.logger = logger or logging.getLogger(__name__)

        self.timeline = MessageTimeline(conversation_id)
        self.poller = MessagePoller(
            client,
            conversation_id,
            on_message=self.timeline.receive,
            interval=poll_interval,
            logger=self.logger
        )

    async def open(self):
        page = await self.client.get_messages(self.conversation_id, limit=self.history_limit)
        for message in page.messages:
            self.timeline.receive(message)

        self.poller.cursor = self.timeline.last_id
        self.poller.start()

    async def send(self, text: str) -> MessageResponse | None:
        """
        Returns:
            MessageResponse | None: the confirmed message, None if the send failed
        """
        text = text.strip()
        if not text:
            return None

        local = self.timeline.add_optimistic(self.client.user_id, text)
        try:
            message = await self.client.send_message(self.conversation_id, text, created_at=local.created_at)
        except (ApiError, httpx.HTTPError) as e:
            self.logger.error("send failed: %s", e)
            self.timeline.discard(local.id)
            return None

        self.timeline.confirm(local.id, message)
        return message

    async def close(self):
        await self.poller.stop()
