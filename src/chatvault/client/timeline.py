from datetime import datetime, timedelta, timezone
import uuid

from chatvault.services.models import MessageResponse

DUPLICATE_WINDOW = timedelta(milliseconds=5000)


class MessageTimeline:
    """
    Client side view of one conversation: messages keyed by id, kept in ascending
    creation order.

    Sends are shown immediately under a temporary id and swapped for the server's copy once
    it is confirmed. Messages observed by polling are merged in unless they duplicate an
    entry already present.
    """

    def __init__(self, conversation_id: str, messages: list[MessageResponse] | None = None):
        self.conversation_id = conversation_id
        self._messages: list[MessageResponse] = []
        for message in messages or []:
            self.receive(message)

    @property
    def messages(self) -> list[MessageResponse]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: str) -> bool:
        return any(m.id == message_id for m in self._messages)

    @property
    def last_id(self) -> str | None:
        return self._messages[-1].id if self._messages else None

    def _sort(self):
        # list.sort is stable, equal timestamps keep insertion order
        self._messages.sort(key=lambda m: m.created_at)

    def add_optimistic(
            self,
            sender_id: str,
            text: str,
            created_at: datetime | None = None
    ) -> MessageResponse:
        local = MessageResponse(
            id=f"temp-{uuid.uuid4()}",
            conversation_id=self.conversation_id,
            sender_id=sender_id,
            text=text,
            created_at=created_at or datetime.now(timezone.utc)
        )
        self._messages.append(local)
        self._sort()
        return local

    def confirm(self, temp_id: str, message: MessageResponse):
        """
        Replace the optimistic entry with the server's copy.
        """
        if message.id in self:
            self._messages = [m for m in self._messages if m.id != temp_id]
            return

        self._messages = [message if m.id == temp_id else m for m in self._messages]
        self._sort()

    def discard(self, temp_id: str):
        self._messages = [m for m in self._messages if m.id != temp_id]

    def is_duplicate(self, message: MessageResponse) -> bool:
        for existing in self._messages:
            if existing.id == message.id:
                return True
            if (
                existing.conversation_id == message.conversation_id
                and existing.sender_id == message.sender_id
                and existing.text == message.text
                and abs(existing.created_at - message.created_at) < DUPLICATE_WINDOW
            ):
                return True
        return False

    def receive(self, message: MessageResponse) -> bool:
        """
        Merge a message observed from the server.

        Returns:
            bool: False when the message was rejected as a duplicate
        """
        if self.is_duplicate(message):
            return False

        self._messages.append(message)
        self._sort()
        return True
