from abc import ABC, abstractmethod
from datetime import datetime

from .dto import *


class UserInterface(ABC):
    @abstractmethod
    async def create_user(
            self,
            user_id: str,
            username: str,
            email: str | None = None,
            display_name: str | None = None,
            avatar_url: str | None = None
    ) -> UserDTO:
        """
        Creates a new user in the database.
        :param user_id:
        :param username:
        :param email:
        :param display_name:
        :param avatar_url:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def get_user_by_id(
            self,
            user_id: str
    ) -> UserDTO | None:
        """
        Get user by User.id
        :param user_id:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def get_user_by_username(
            self,
            username: str
    ) -> UserDTO | None:
        raise NotImplementedError()

    @abstractmethod
    async def update_user(
            self,
            user_id: str,
            changes: dict
    ) -> UserDTO:
        """
        Applies a partial update. Deactivation is done with is_active=False, users are never deleted.
        :param user_id:
        :param changes: column name -> new value
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def search_users(
            self,
            query: str,
            limit: int = 20
    ) -> list[UserDTO]:
        """
        Active users whose username or display name contains the query.
        :param query:
        :param limit:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def get_active_users(
            self,
            limit: int = 100
    ) -> list[UserDTO]:
        raise NotImplementedError()


class ConversationInterface(ABC):
    @abstractmethod
    async def is_active_participant(
            self,
            conversation_id: str,
            user_id: str
    ) -> bool:
        """
        True iff a participant row exists for the pair and its left_at is unset.
        :param conversation_id:
        :param user_id:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def create_conversation(
            self,
            conversation_id: str,
            creator_id: str,
            name: str | None = None,
            conversation_type: int = 1,
            participant_ids: list[str] | None = None
    ) -> ConversationDTO:
        """
        Creates the conversation and its participants in one transaction.
        :param conversation_id:
        :param creator_id:
        :param name:
        :param conversation_type:
        :param participant_ids:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def get_conversation(
            self,
            conversation_id: str,
            user_id: str
    ) -> ConversationDTO:
        raise NotImplementedError()

    @abstractmethod
    async def get_user_conversations(
            self,
            user_id: str,
            limit: int = 20,
            offset: int = 0
    ) -> ConversationPageDTO:
        raise NotImplementedError()

    @abstractmethod
    async def add_participant(
            self,
            conversation_id: str,
            actor_id: str,
            user_id: str
    ) -> ConversationDTO:
        """
        Adds a user, or re-activates a previous participant row.
        :param conversation_id:
        :param actor_id: active participant performing the change
        :param user_id:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def leave_conversation(
            self,
            conversation_id: str,
            user_id: str
    ) -> bool:
        raise NotImplementedError()


class MessageInterface(ABC):
    @abstractmethod
    async def send_message(
            self,
            conversation_id: str,
            sender_id: str,
            text: str,
            created_at: datetime | None = None,
            reply_to_message_id: str | None = None
    ) -> MessageDTO:
        """
        Encrypts and stores a message, moving the conversation's last message pointer.
        :param conversation_id:
        :param sender_id:
        :param text: plaintext, never persisted
        :param created_at: client timestamp, server time when omitted
        :param reply_to_message_id:
        :return: the stored message carrying the plaintext
        """
        raise NotImplementedError()

    @abstractmethod
    async def get_messages(
            self,
            conversation_id: str,
            caller_id: str,
            query: MessageQuery | None = None
    ) -> MessagePageDTO:
        """
        Decrypted, non-deleted messages in ascending creation order.
        :param conversation_id:
        :param caller_id:
        :param query:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def edit_message(
            self,
            message_id: str,
            sender_id: str,
            text: str
    ) -> MessageDTO:
        raise NotImplementedError()

    @abstractmethod
    async def delete_message(
            self,
            message_id: str,
            sender_id: str
    ) -> bool:
        """
        Soft delete, only the sender may delete.
        :param message_id:
        :param sender_id:
        :return:
        """
        raise NotImplementedError()
