from typing import Callable
import asyncio
import logging

import httpx

from chatvault.services.models import MessageResponse
from .api_client import ChatApiClient
from .errors import ApiError, RateLimited


class MessagePoller:
    """
    Cooperative polling loop for one conversation.

    Each poll asks for messages after the last seen id and the next poll is scheduled only
    once the previous one has settled, so requests never overlap. The delay is ``interval``
    after a success, ``rate_limit_backoff`` after a 429 and ``error_backoff`` after any
    other failure.
    """

    def __init__(
            self,
            client: ChatApiClient,
            conversation_id: str,
            on_message: Callable[[MessageResponse], object],
            cursor: str | None = None,
            interval: float = 5.0,
            rate_limit_backoff: float = 30.0,
            error_backoff: float = 10.0,
            batch_size: int = 10,
            logger: logging.Logger | None = None
    ):
        self.client = client
        self.conversation_id = conversation_id
        self.on_message = on_message
        self.cursor = cursor
        self.interval = interval
        self.rate_limit_backoff = rate_limit_backoff
        self.error_backoff = error_backoff
        self.batch_size = batch_size
        self.logger = logger or logging.getLogger(__name__)

        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def poll_once(self) -> float:
        """
        Returns:
            float: seconds to wait before the next poll
        """
        try:
            page = await self.client.get_messages(
                self.conversation_id,
                limit=self.batch_size,
                after=self.cursor
            )
        except RateLimited as e:
            self.logger.warning("Rate limited while polling %s, waiting %ss", self.conversation_id, self.rate_limit_backoff)
            self.logger.debug("Rate limit response: %s", e)
            return self.rate_limit_backoff
        except (ApiError, httpx.HTTPError) as e:
            self.logger.error("Error polling for messages in %s: %s", self.conversation_id, e)
            return self.error_backoff
        except Exception as e:
            self.logger.error("Unexpected error polling %s: %s", self.conversation_id, e, exc_info=True)
            return self.error_backoff

        for message in page.messages:
            try:
                self.on_message(message)
            except Exception as e:
                self.logger.error("Message handler failed for %s: %s", message.id, e, exc_info=True)
        if page.messages:
            self.cursor = page.messages[-1].id

        return self.interval

    async def _run(self):
        delay = self.interval
        while self._running:
            await asyncio.sleep(delay)
            if not self._running:
                break
            delay = await self.poll_once()

    def start(self):
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        self._running = False
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
