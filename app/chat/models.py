from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Index,
)

from app.core.database import Base, statement_clock


DIRECT = "direct"
GROUP = "group"


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        # Canonical ordering: one direct conversation per unordered user pair
        CheckConstraint(
            "direct_user_low IS NULL OR direct_user_low < direct_user_high",
            name="ck_direct_pair_ordered",
        ),
        UniqueConstraint("direct_user_low", "direct_user_high", name="uq_direct_pair"),
        CheckConstraint("kind IN ('direct', 'group')", name="ck_conversation_kind"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False, default="", server_default="")
    kind = Column(String(16), nullable=False)
    last_message_id = Column(
        Integer,
        ForeignKey(
            "messages.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_conversations_last_message",
        ),
        nullable=True,
    )
    photo_url = Column(String, nullable=False, default="", server_default="")
    direct_user_low = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    direct_user_high = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime, server_default=statement_clock())

    @property
    def is_group(self) -> bool:
        return self.kind == GROUP


class ConversationMember(Base):
    __tablename__ = "conversation_members"

    conversation_id = Column(
        Integer, ForeignKey("conversations.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    is_admin = Column(Boolean, nullable=False, default=False, server_default="0")
    joined_at = Column(DateTime, server_default=statement_clock())


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_timestamp", "conversation_id", "timestamp", "id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(
        Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    # Text, or the photo URL when is_photo is set
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, server_default=statement_clock())
    reply_to_id = Column(Integer, ForeignKey("messages.id", ondelete="SET NULL"), nullable=True)
    is_photo = Column(Boolean, nullable=False, default=False, server_default="0")
    is_forwarded = Column(Boolean, nullable=False, default=False, server_default="0")


class MessageReaction(Base):
    __tablename__ = "message_reactions"

    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    reaction = Column(String(32), nullable=False)
