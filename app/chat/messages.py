import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from app.core.database import Database
from app.core.errors import (
    ChatError,
    ConversationNotFoundError,
    InvalidArgumentError,
    MessageNotFoundError,
    NotFoundError,
    NotMemberError,
    ReactionNotFoundError,
    ReplyTargetNotFoundError,
)
from .conversations import FAILED, FORBIDDEN, NOT_FOUND
from .membership import MembershipEngine
from .models import Conversation, Message, MessageReaction


logger = logging.getLogger(__name__)

FORWARDED = "forwarded"


@dataclass
class ForwardResult:
    conversation_id: int
    message_id: Optional[int] = None
    error: Optional[ChatError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def outcome(self) -> str:
        if self.error is None:
            return FORWARDED
        if isinstance(self.error, NotMemberError):
            return FORBIDDEN
        if isinstance(self.error, NotFoundError):
            return NOT_FOUND
        return FAILED


class MessageManager:
    """Sending, deleting, forwarding and reacting to messages."""

    def __init__(self, db: Database, timeout: Optional[float] = None):
        self.db = db
        self.timeout = timeout

    def _insert(
        self,
        session: Session,
        conversation_id: int,
        sender_id: int,
        content: str,
        is_photo: bool,
        reply_to_id: Optional[int],
        is_forwarded: bool,
    ) -> int:
        conversation = session.get(Conversation, conversation_id)
        if conversation is None:
            raise ConversationNotFoundError()

        MembershipEngine(session).require_member(conversation_id, sender_id)

        if reply_to_id is not None:
            target = session.get(Message, reply_to_id)
            if target is None or target.conversation_id != conversation_id:
                raise ReplyTargetNotFoundError()

        message = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            is_photo=is_photo,
            reply_to_id=reply_to_id,
            is_forwarded=is_forwarded,
        )
        session.add(message)
        session.flush()

        conversation.last_message_id = message.id
        session.flush()
        return message.id

    def create_message(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        reply_to_id: Optional[int] = None,
        is_forwarded: bool = False,
    ) -> int:
        if not content or not content.strip():
            raise InvalidArgumentError("Message text cannot be empty.")

        with self.db.transaction(self.timeout) as session:
            message_id = self._insert(
                session, conversation_id, sender_id, content, False, reply_to_id, is_forwarded
            )

        logger.info(f"message_created id={message_id} conversation={conversation_id}")
        return message_id

    def create_photo_message(
        self,
        conversation_id: int,
        sender_id: int,
        photo_url: str,
        reply_to_id: Optional[int] = None,
        is_forwarded: bool = False,
    ) -> int:
        if not photo_url:
            raise InvalidArgumentError("Photo reference cannot be empty.")

        with self.db.transaction(self.timeout) as session:
            message_id = self._insert(
                session, conversation_id, sender_id, photo_url, True, reply_to_id, is_forwarded
            )

        logger.info(f"photo_message_created id={message_id} conversation={conversation_id}")
        return message_id

    def delete_message(self, message_id: int, acting_user_id: int):
        """
        Delete a message sent by ``acting_user_id``.

        A missing message and somebody else's message fail the same way, so
        callers cannot discover which message ids exist.
        """
        with self.db.transaction(self.timeout) as session:
            message = session.get(Message, message_id)
            if message is None or message.sender_id != acting_user_id:
                raise MessageNotFoundError()

            conversation_id = message.conversation_id

            session.execute(
                update(Message).where(Message.reply_to_id == message_id).values(reply_to_id=None)
            )
            session.execute(delete(MessageReaction).where(MessageReaction.message_id == message_id))

            previous_id = session.scalar(
                select(Message.id)
                .where(Message.conversation_id == conversation_id, Message.id != message_id)
                .order_by(Message.timestamp.desc(), Message.id.desc())
                .limit(1)
            )
            session.execute(
                update(Conversation)
                .where(
                    Conversation.id == conversation_id,
                    Conversation.last_message_id == message_id,
                )
                .values(last_message_id=previous_id)
            )

            session.expunge(message)
            session.execute(delete(Message).where(Message.id == message_id))

        logger.info(f"message_deleted id={message_id} by={acting_user_id}")

    def forward_message(self, message_id: int, sender_id: int, target_conversation_id: int) -> int:
        """
        Copy a message into another conversation as a forwarded message.

        The sender must be able to read the original and must be a member of
        the target. The copy never carries a reply link.
        """
        with self.db.transaction(self.timeout) as session:
            original = session.get(Message, message_id)
            if original is None or not MembershipEngine(session).is_member(
                original.conversation_id, sender_id
            ):
                raise MessageNotFoundError()

            new_id = self._insert(
                session,
                target_conversation_id,
                sender_id,
                original.content,
                original.is_photo,
                None,
                True,
            )

        logger.info(f"message_forwarded id={message_id} to={target_conversation_id} new={new_id}")
        return new_id

    def forward_message_many(
        self, message_id: int, sender_id: int, target_conversation_ids: Iterable[int]
    ) -> List[ForwardResult]:
        """Forward to every target independently and report each outcome."""
        results = []
        for target_id in dict.fromkeys(target_conversation_ids):
            try:
                new_id = self.forward_message(message_id, sender_id, target_id)
            except ChatError as error:
                logger.info(
                    f"message_forward_failed id={message_id} to={target_id} reason={type(error).__name__}"
                )
                results.append(ForwardResult(target_id, error=error))
                continue
            results.append(ForwardResult(target_id, message_id=new_id))
        return results

    def add_reaction(self, message_id: int, user_id: int, emoji: str):
        """Set the user's reaction on a message, replacing any earlier one."""
        emoji = (emoji or "").strip()
        if not emoji:
            raise InvalidArgumentError("Reaction cannot be empty.")

        with self.db.transaction(self.timeout) as session:
            message = session.get(Message, message_id)
            if message is None or not MembershipEngine(session).is_member(
                message.conversation_id, user_id
            ):
                raise MessageNotFoundError()

            statement = self.db.upsert(MessageReaction.__table__).values(
                message_id=message_id, user_id=user_id, reaction=emoji
            )
            session.execute(
                statement.on_conflict_do_update(
                    index_elements=["message_id", "user_id"],
                    set_={"reaction": statement.excluded.reaction},
                )
            )

    def remove_reaction(self, message_id: int, user_id: int):
        with self.db.transaction(self.timeout) as session:
            result = session.execute(
                delete(MessageReaction).where(
                    MessageReaction.message_id == message_id,
                    MessageReaction.user_id == user_id,
                )
            )
            if result.rowcount == 0:
                raise ReactionNotFoundError()
