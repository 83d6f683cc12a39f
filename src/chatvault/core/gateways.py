from datetime import datetime, timezone
from functools import wraps
from typing import Callable
import logging
import uuid

from sqlalchemy import select, insert, update, func, or_
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from chatvault.encryption import KeyService, EncryptionError, encrypt_message, decrypt_message
from .database import (
    User, Conversation, ConversationParticipant, Message,
    ConversationType, ParticipantRole, utcnow,
)
from .db_manager import DatabaseManager
from .dto import (
    UserDTO, ParticipantDTO, ConversationDTO, ConversationPageDTO,
    MessageDTO, MessagePageDTO, MessageQuery,
)
from .exceptions import NotAuthorized, NotFound, Conflict, Transient
from .interfaces import UserInterface, ConversationInterface, MessageInterface

UNDECRYPTABLE_PLACEHOLDER = "[Could not decrypt message]"
NON_NULLABLE_USER_COLUMNS = frozenset({"username", "is_active"})


def translate_store_errors(func: Callable) -> Callable:
    """
    Re-raises connectivity failures of the store as Transient so the API answers 503.
    """
    @wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as e:
            self._logger.error("Store unavailable in %s: %s", func.__name__, e)
            raise Transient("Store unavailable") from e
        except DBAPIError as e:
            if e.connection_invalidated:
                self._logger.error("Store connection lost in %s: %s", func.__name__, e)
                raise Transient("Store unavailable") from e
            raise
    return wrapper


def to_naive_utc(value: datetime | None) -> datetime:
    if value is None:
        return utcnow()
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


async def participant_is_active(session: AsyncSession, conversation_id: str, user_id: str) -> bool:
    stmt = select(ConversationParticipant.id).where(
        ConversationParticipant.conversation_id == conversation_id,
        ConversationParticipant.user_id == user_id,
        ConversationParticipant.left_at.is_(None)
    ).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


def _user_dto(user: User) -> UserDTO:
    return UserDTO(
        id=user.id,
        username=user.username,
        email=user.email,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
        is_active=user.is_active,
        created_at=user.created_at,
        updated_at=user.updated_at
    )


class UserGateway(UserInterface):
    __slots__ = ("_db_manager", "_logger")

    def __init__(self, db_manager: DatabaseManager, logger: logging.Logger | None = None):
        self._db_manager = db_manager
        self._logger = logger or logging.getLogger(__name__)

    @translate_store_errors
    async def create_user(
            self,
            user_id: str,
            username: str,
            email: str | None = None,
            display_name: str | None = None,
            avatar_url: str | None = None
    ) -> UserDTO:
        async with self._db_manager.session() as session:
            if await session.get(User, user_id) is not None:
                raise Conflict("User already exists")

            taken = await session.execute(select(User.id).where(User.username == username))
            if taken.scalar_one_or_none() is not None:
                raise Conflict("Username already taken")

            now = utcnow()
            user = User(
                id=user_id,
                username=username,
                email=email,
                display_name=display_name,
                avatar_url=avatar_url,
                is_active=True,
                created_at=now,
                updated_at=now
            )
            session.add(user)
            try:
                await session.flush()
            except IntegrityError as e:
                self._logger.warning("Concurrent user creation for %s: %s", user_id, e)
                raise Conflict("User already exists") from e

            return _user_dto(user)

    @translate_store_errors
    async def get_user_by_id(self, user_id: str) -> UserDTO | None:
        async with self._db_manager.session() as session:
            user = await session.get(User, user_id)
            return _user_dto(user) if user else None

    @translate_store_errors
    async def get_user_by_username(self, username: str) -> UserDTO | None:
        async with self._db_manager.session() as session:
            result = await session.execute(select(User).where(User.username == username))
            user = result.scalars().first()
            return _user_dto(user) if user else None

    @translate_store_errors
    async def update_user(self, user_id: str, changes: dict) -> UserDTO:
        # null for a NOT NULL column means "leave unchanged"
        changes = {
            column: value for column, value in changes.items()
            if value is not None or column not in NON_NULLABLE_USER_COLUMNS
        }

        async with self._db_manager.session() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFound("User not found")

            new_username = changes.get("username")
            if new_username and new_username != user.username:
                taken = await session.execute(
                    select(User.id).where(User.username == new_username, User.id != user_id)
                )
                if taken.scalar_one_or_none() is not None:
                    raise Conflict("Username already taken")

            if not changes:
                return _user_dto(user)

            for column, value in changes.items():
                setattr(user, column, value)
            user.updated_at = utcnow()
            await session.flush()

            if changes.get("is_active") is False:
                self._logger.info("User deactivated: %s", user_id)

            return _user_dto(user)

    @translate_store_errors
    async def search_users(self, query: str, limit: int = 20) -> list[UserDTO]:
        pattern = f"%{query}%"
        async with self._db_manager.session() as session:
            stmt = select(User).where(
                or_(User.username.ilike(pattern), User.display_name.ilike(pattern)),
                User.is_active.is_(True)
            ).order_by(User.username).limit(limit)
            result = await session.execute(stmt)
            return [_user_dto(user) for user in result.scalars().all()]

    @translate_store_errors
    async def get_active_users(self, limit: int = 100) -> list[UserDTO]:
        async with self._db_manager.session() as session:
            stmt = select(User).where(User.is_active.is_(True)).order_by(User.username).limit(limit)
            result = await session.execute(stmt)
            return [_user_dto(user) for user in result.scalars().all()]


class ConversationGateway(ConversationInterface):
    __slots__ = ("_db_manager", "_logger")

    def __init__(self, db_manager: DatabaseManager, logger: logging.Logger | None = None):
        self._db_manager = db_manager
        self._logger = logger or logging.getLogger(__name__)

    @translate_store_errors
    async def is_active_participant(self, conversation_id: str, user_id: str) -> bool:
        async with self._db_manager.session() as session:
            return await participant_is_active(session, conversation_id, user_id)

    @translate_store_errors
    async def create_conversation(
            self,
            conversation_id: str,
            creator_id: str,
            name: str | None = None,
            conversation_type: int = ConversationType.DIRECT,
            participant_ids: list[str] | None = None
    ) -> ConversationDTO:
        all_participants = [creator_id]
        for pid in participant_ids or []:
            if pid not in all_participants:
                all_participants.append(pid)

        async with self._db_manager.session() as session:
            if await session.get(Conversation, conversation_id) is not None:
                raise Conflict("Conversation already exists")

            existing = await session.execute(select(User.id).where(User.id.in_(all_participants)))
            known = set(existing.scalars().all())
            now = utcnow()
            for pid in all_participants:
                if pid not in known:
                    # unknown ids get a placeholder account so the membership row can exist
                    session.add(User(
                        id=pid,
                        username=pid,
                        display_name=pid,
                        is_active=True,
                        created_at=now,
                        updated_at=now
                    ))

            session.add(Conversation(
                id=conversation_id,
                name=name,
                type=int(conversation_type),
                created_at=now,
                updated_at=now
            ))
            await self._flush_or_conflict(session, conversation_id)

            creator_role = ParticipantRole.ADMIN if conversation_type == ConversationType.GROUP else ParticipantRole.MEMBER
            for pid in all_participants:
                session.add(ConversationParticipant(
                    conversation_id=conversation_id,
                    user_id=pid,
                    role=int(creator_role if pid == creator_id else ParticipantRole.MEMBER),
                    joined_at=now
                ))
            await self._flush_or_conflict(session, conversation_id)

            self._logger.info(
                "Conversation %s created by %s with %d participants",
                conversation_id, creator_id, len(all_participants)
            )
            return await self._load_conversation(session, conversation_id)

    async def _flush_or_conflict(self, session: AsyncSession, conversation_id: str):
        try:
            await session.flush()
        except IntegrityError as e:
            self._logger.warning("Integrity error creating conversation %s: %s", conversation_id, e)
            raise Conflict("Conversation already exists") from e

    async def _load_conversation(self, session: AsyncSession, conversation_id: str) -> ConversationDTO:
        conversation = await session.get(Conversation, conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found")

        stmt = select(ConversationParticipant, User).join(
            User, ConversationParticipant.user_id == User.id
        ).where(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.left_at.is_(None)
        ).order_by(ConversationParticipant.joined_at, ConversationParticipant.id)
        result = await session.execute(stmt)

        participants = [
            ParticipantDTO(
                id=user.id,
                display_name=user.display_name,
                avatar_url=user.avatar_url,
                role=participant.role,
                joined_at=participant.joined_at
            ) for participant, user in result.all()
        ]

        return ConversationDTO(
            id=conversation.id,
            name=conversation.name,
            type=conversation.type,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            last_message_id=conversation.last_message_id,
            last_message_at=conversation.last_message_at,
            participants=participants
        )

    @translate_store_errors
    async def get_conversation(self, conversation_id: str, user_id: str) -> ConversationDTO:
        async with self._db_manager.session() as session:
            if await session.get(Conversation, conversation_id) is None:
                raise NotFound("Conversation not found")
            if not await participant_is_active(session, conversation_id, user_id):
                raise NotAuthorized("Not authorized to view this conversation")
            return await self._load_conversation(session, conversation_id)

    @translate_store_errors
    async def get_user_conversations(
            self,
            user_id: str,
            limit: int = 20,
            offset: int = 0
    ) -> ConversationPageDTO:
        async with self._db_manager.session() as session:
            membership = (
                ConversationParticipant.user_id == user_id,
                ConversationParticipant.left_at.is_(None),
            )

            stmt = select(Conversation).join(
                ConversationParticipant,
                Conversation.id == ConversationParticipant.conversation_id
            ).where(*membership).order_by(
                Conversation.last_message_at.desc().nulls_last(),
                Conversation.updated_at.desc()
            ).offset(offset).limit(limit)
            result = await session.execute(stmt)
            rows = result.scalars().all()

            count_stmt = select(func.count()).select_from(ConversationParticipant).where(*membership)
            total = (await session.execute(count_stmt)).scalar_one()

            conversations = []
            for conversation in rows:
                other_stmt = select(User).join(
                    ConversationParticipant, ConversationParticipant.user_id == User.id
                ).where(
                    ConversationParticipant.conversation_id == conversation.id,
                    ConversationParticipant.user_id != user_id,
                    ConversationParticipant.left_at.is_(None)
                ).order_by(ConversationParticipant.joined_at, ConversationParticipant.id).limit(1)
                other = (await session.execute(other_stmt)).scalars().first()

                conversations.append(ConversationDTO(
                    id=conversation.id,
                    name=conversation.name,
                    type=conversation.type,
                    created_at=conversation.created_at,
                    updated_at=conversation.updated_at,
                    last_message_id=conversation.last_message_id,
                    last_message_at=conversation.last_message_at,
                    other_participant=ParticipantDTO(
                        id=other.id,
                        display_name=other.display_name,
                        avatar_url=other.avatar_url
                    ) if other else None
                ))

            return ConversationPageDTO(
                conversations=conversations,
                total=total,
                has_more=offset + len(conversations) < total
            )

    @translate_store_errors
    async def add_participant(self, conversation_id: str, actor_id: str, user_id: str) -> ConversationDTO:
        async with self._db_manager.session() as session:
            if await session.get(Conversation, conversation_id) is None:
                raise NotFound("Conversation not found")
            if not await participant_is_active(session, conversation_id, actor_id):
                raise NotAuthorized("Not authorized to modify this conversation")
            if await session.get(User, user_id) is None:
                raise NotFound("User not found")

            result = await session.execute(
                select(ConversationParticipant).where(
                    ConversationParticipant.conversation_id == conversation_id,
                    ConversationParticipant.user_id == user_id
                )
            )
            participant = result.scalars().first()
            if participant is None:
                session.add(ConversationParticipant(
                    conversation_id=conversation_id,
                    user_id=user_id,
                    role=int(ParticipantRole.MEMBER),
                    joined_at=utcnow()
                ))
            elif participant.left_at is not None:
                participant.left_at = None
                participant.joined_at = utcnow()
            await session.flush()

            self._logger.info("User %s joined conversation %s", user_id, conversation_id)
            return await self._load_conversation(session, conversation_id)

    @translate_store_errors
    async def leave_conversation(self, conversation_id: str, user_id: str) -> bool:
        async with self._db_manager.session() as session:
            stmt = update(ConversationParticipant).where(
                ConversationParticipant.conversation_id == conversation_id,
                ConversationParticipant.user_id == user_id,
                ConversationParticipant.left_at.is_(None)
            ).values(left_at=utcnow())
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise NotAuthorized("Not an active participant of this conversation")

            self._logger.info("User %s left conversation %s", user_id, conversation_id)
            return True


class MessageGateway(MessageInterface):
    """
    The only component that touches ciphertext. Plaintext goes in on write and comes back out
    on read; envelopes and conversation keys never leave this class.
    """
    __slots__ = ("_db_manager", "_key_service", "_logger")

    def __init__(
            self,
            db_manager: DatabaseManager,
            key_service: KeyService,
            logger: logging.Logger | None = None
    ):
        self._db_manager = db_manager
        self._key_service = key_service
        self._logger = logger or logging.getLogger(__name__)

    @translate_store_errors
    async def send_message(
            self,
            conversation_id: str,
            sender_id: str,
            text: str,
            created_at: datetime | None = None,
            reply_to_message_id: str | None = None
    ) -> MessageDTO:
        created_at = to_naive_utc(created_at)
        message_id = str(uuid.uuid4())

        async with self._db_manager.session() as session:
            if not await participant_is_active(session, conversation_id, sender_id):
                raise NotAuthorized("Not authorized to send messages to this conversation")

            if reply_to_message_id is not None:
                parent = await session.execute(
                    select(Message.id).where(
                        Message.id == reply_to_message_id,
                        Message.conversation_id == conversation_id
                    )
                )
                if parent.scalar_one_or_none() is None:
                    raise NotFound("Reply target not found in this conversation")

            key = self._key_service.get_conversation_key(conversation_id)
            envelope = encrypt_message(text, key)

            await self._insert_message(session, {
                "id": message_id,
                "conversation_id": conversation_id,
                "sender_id": sender_id,
                "ciphertext": envelope.ciphertext,
                "iv": envelope.iv,
                "created_at": created_at,
                "reply_to_message_id": reply_to_message_id,
            })
            await self._touch_conversation(session, conversation_id, message_id, created_at)

            sender = await session.get(User, sender_id)

        self._logger.debug("Message %s stored in conversation %s", message_id, conversation_id)
        return MessageDTO(
            id=message_id,
            conversation_id=conversation_id,
            sender_id=sender_id,
            text=text,
            created_at=created_at,
            reply_to_message_id=reply_to_message_id,
            sender_name=(sender.display_name or sender.username) if sender else None,
            sender_avatar=sender.avatar_url if sender else None
        )

    async def _insert_message(self, session: AsyncSession, values: dict):
        await session.execute(insert(Message).values(**values))

    async def _touch_conversation(
            self,
            session: AsyncSession,
            conversation_id: str,
            message_id: str,
            created_at: datetime
    ):
        await session.execute(
            update(Conversation).where(
                Conversation.id == conversation_id
            ).values(
                last_message_id=message_id,
                last_message_at=created_at,
                updated_at=utcnow()
            )
        )

    async def _resolve_boundary(self, session: AsyncSession, conversation_id: str, message_id: str | None) -> datetime | None:
        if not message_id:
            return None
        result = await session.execute(
            select(Message.created_at).where(
                Message.id == message_id,
                Message.conversation_id == conversation_id
            )
        )
        return result.scalar_one_or_none()

    @translate_store_errors
    async def get_messages(
            self,
            conversation_id: str,
            caller_id: str,
            query: MessageQuery | None = None
    ) -> MessagePageDTO:
        query = query or MessageQuery()

        async with self._db_manager.session() as session:
            if not await participant_is_active(session, conversation_id, caller_id):
                raise NotAuthorized("Not authorized to view this conversation")

            stmt = select(Message, User).join(
                User, Message.sender_id == User.id
            ).where(
                Message.conversation_id == conversation_id,
                Message.deleted_at.is_(None)
            )

            if query.before_message_id:
                before = await self._resolve_boundary(session, conversation_id, query.before_message_id)
                if before is not None:
                    stmt = stmt.where(Message.created_at < before)
            elif query.after_message_id:
                after = await self._resolve_boundary(session, conversation_id, query.after_message_id)
                if after is not None:
                    stmt = stmt.where(Message.created_at > after)

            stmt = stmt.order_by(Message.created_at.asc()).offset(query.offset).limit(query.limit)
            rows = (await session.execute(stmt)).all()

            count_stmt = select(func.count()).select_from(Message).where(
                Message.conversation_id == conversation_id,
                Message.deleted_at.is_(None)
            )
            total = (await session.execute(count_stmt)).scalar_one()

        key = self._key_service.get_conversation_key(conversation_id)
        messages = [self._open(message, sender, key) for message, sender in rows]

        return MessagePageDTO(
            messages=messages,
            has_more=query.offset + len(messages) < total,
            total=total
        )

    def _open(self, message: Message, sender: User | None, key: str) -> MessageDTO:
        try:
            text = decrypt_message(message.ciphertext, message.iv, key)
        except EncryptionError as e:
            self._logger.error("Error decrypting message %s: %s", message.id, e)
            text = UNDECRYPTABLE_PLACEHOLDER

        return MessageDTO(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            text=text,
            created_at=message.created_at,
            edited_at=message.edited_at,
            deleted_at=message.deleted_at,
            reply_to_message_id=message.reply_to_message_id,
            sender_name=(sender.display_name or sender.username) if sender else None,
            sender_avatar=sender.avatar_url if sender else None
        )

    async def _get_own_message(self, session: AsyncSession, message_id: str, sender_id: str) -> Message:
        message = await session.get(Message, message_id)
        if message is None or message.deleted_at is not None:
            raise NotFound("Message not found")
        if message.sender_id != sender_id:
            raise NotAuthorized("Only the sender can change this message")
        if not await participant_is_active(session, message.conversation_id, sender_id):
            raise NotAuthorized("Not authorized to modify messages in this conversation")
        return message

    @translate_store_errors
    async def edit_message(self, message_id: str, sender_id: str, text: str) -> MessageDTO:
        async with self._db_manager.session() as session:
            message = await self._get_own_message(session, message_id, sender_id)

            key = self._key_service.get_conversation_key(message.conversation_id)
            envelope = encrypt_message(text, key)
            message.ciphertext = envelope.ciphertext
            message.iv = envelope.iv
            message.edited_at = utcnow()
            await session.flush()

            sender = await session.get(User, sender_id)

        return MessageDTO(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            text=text,
            created_at=message.created_at,
            edited_at=message.edited_at,
            reply_to_message_id=message.reply_to_message_id,
            sender_name=(sender.display_name or sender.username) if sender else None,
            sender_avatar=sender.avatar_url if sender else None
        )

    @translate_store_errors
    async def delete_message(self, message_id: str, sender_id: str) -> bool:
        async with self._db_manager.session() as session:
            message = await self._get_own_message(session, message_id, sender_id)
            message.deleted_at = utcnow()
            await session.flush()

            conversation = await session.get(Conversation, message.conversation_id)
            if conversation is not None and conversation.last_message_id == message_id:
                latest = (await session.execute(
                    select(Message.id, Message.created_at).where(
                        Message.conversation_id == message.conversation_id,
                        Message.deleted_at.is_(None)
                    ).order_by(Message.created_at.desc()).limit(1)
                )).first()
                conversation.last_message_id = latest.id if latest else None
                conversation.last_message_at = latest.created_at if latest else None
                await session.flush()

        self._logger.info("Message %s deleted by %s", message_id, sender_id)
        return True
