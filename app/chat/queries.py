from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.database import Database
from app.core.errors import ConversationNotFoundError, InvalidArgumentError
from app.users.models import User
from .membership import MembershipEngine
from .models import GROUP, Conversation, ConversationMember, Message, MessageReaction
from .schemas import ConversationData, MemberData, MessageData, ReactionData


def _members_by_conversation(
    session: Session, conversation_ids: List[int]
) -> Dict[int, List[MemberData]]:
    rows = session.execute(
        select(
            ConversationMember.conversation_id,
            ConversationMember.is_admin,
            User.id,
            User.name,
            User.photo_url,
        )
        .join(User, User.id == ConversationMember.user_id)
        .where(ConversationMember.conversation_id.in_(conversation_ids))
        .order_by(ConversationMember.joined_at, User.id)
    ).all()

    members = defaultdict(list)
    for conversation_id, is_admin, user_id, name, photo_url in rows:
        members[conversation_id].append(
            MemberData(id=user_id, name=name, photo_url=photo_url or "", is_admin=bool(is_admin))
        )
    return members


def _reactions_by_message(session: Session, message_ids: List[int]) -> Dict[int, List[ReactionData]]:
    if not message_ids:
        return {}
    rows = session.execute(
        select(MessageReaction.message_id, MessageReaction.user_id, MessageReaction.reaction)
        .where(MessageReaction.message_id.in_(message_ids))
        .order_by(MessageReaction.user_id)
    ).all()

    reactions = defaultdict(list)
    for message_id, user_id, reaction in rows:
        reactions[message_id].append(ReactionData(user_id=user_id, reaction=reaction))
    return reactions


def _to_message_data(message: Message, sender_name: str, reactions: Iterable[ReactionData] = ()) -> MessageData:
    return MessageData(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        sender_name=sender_name,
        content=message.content,
        is_photo=bool(message.is_photo),
        is_forwarded=bool(message.is_forwarded),
        reply_to_id=message.reply_to_id,
        timestamp=message.timestamp,
        reactions=list(reactions),
    )


def _to_conversation_data(
    conversation: Conversation,
    members: List[MemberData],
    last_message: Optional[MessageData] = None,
) -> ConversationData:
    return ConversationData(
        id=conversation.id,
        name=conversation.name or "",
        kind=conversation.kind,
        is_group=conversation.kind == GROUP,
        photo_url=conversation.photo_url or "",
        last_message_id=conversation.last_message_id,
        last_message=last_message,
        members=members,
    )


class ConversationQueries:
    """Read side: assembles conversations, members and message history."""

    def __init__(self, db: Database, timeout: Optional[float] = None):
        self.db = db
        self.timeout = timeout

    def get_conversations_for_user(self, user_id: int) -> List[ConversationData]:
        """
        Every conversation ``user_id`` belongs to, most recently active first.

        Members and last messages are fetched in one batch each for the
        whole list rather than once per conversation.
        """
        with self.db.transaction(self.timeout) as session:
            conversations = session.scalars(
                select(Conversation)
                .join(ConversationMember, ConversationMember.conversation_id == Conversation.id)
                .where(ConversationMember.user_id == user_id)
            ).all()
            if not conversations:
                return []

            ids = [c.id for c in conversations]
            members = _members_by_conversation(session, ids)

            last_ids = [c.last_message_id for c in conversations if c.last_message_id is not None]
            last_messages = {}
            if last_ids:
                rows = session.execute(
                    select(Message, User.name)
                    .join(User, User.id == Message.sender_id)
                    .where(Message.id.in_(last_ids))
                ).all()
                last_messages = {m.id: _to_message_data(m, name) for m, name in rows}

            result = [
                _to_conversation_data(c, members.get(c.id, []), last_messages.get(c.last_message_id))
                for c in conversations
            ]

        # Conversations without messages go last, newest first
        with_messages = sorted(
            (c for c in result if c.last_message is not None),
            key=lambda c: (c.last_message.timestamp, c.last_message.id),
            reverse=True,
        )
        without_messages = sorted(
            (c for c in result if c.last_message is None), key=lambda c: c.id, reverse=True
        )
        return with_messages + without_messages

    def _load_visible(self, session: Session, conversation_id: int, user_id: int) -> Conversation:
        conversation = session.get(Conversation, conversation_id)
        if conversation is None:
            raise ConversationNotFoundError()
        MembershipEngine(session).require_member(conversation_id, user_id)
        return conversation

    def get_conversation(self, conversation_id: int, user_id: int) -> ConversationData:
        with self.db.transaction(self.timeout) as session:
            conversation = self._load_visible(session, conversation_id, user_id)
            members = _members_by_conversation(session, [conversation_id])
            return _to_conversation_data(conversation, members.get(conversation_id, []))

    def get_conversation_with_messages(
        self,
        conversation_id: int,
        user_id: int,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[ConversationData, List[MessageData]]:
        """
        A conversation with its members and message history, oldest first.

        Pages are cut from the newest end: ``offset`` skips the most recent
        messages and ``limit`` bounds how many older ones are returned.
        """
        if (limit is not None and limit < 0) or offset < 0:
            raise InvalidArgumentError("limit and offset must not be negative.")

        with self.db.transaction(self.timeout) as session:
            conversation = self._load_visible(session, conversation_id, user_id)
            members = _members_by_conversation(session, [conversation_id])

            query = (
                select(Message, User.name)
                .join(User, User.id == Message.sender_id)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.timestamp.desc(), Message.id.desc())
                .offset(offset)
            )
            if limit is not None:
                query = query.limit(limit)
            rows = list(reversed(session.execute(query).all()))

            reactions = _reactions_by_message(session, [m.id for m, _ in rows])
            messages = [_to_message_data(m, name, reactions.get(m.id, [])) for m, name in rows]

            last_message = next((m for m in messages if m.id == conversation.last_message_id), None)
            return (
                _to_conversation_data(conversation, members.get(conversation_id, []), last_message),
                messages,
            )
