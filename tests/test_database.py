import pytest
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql.base import PGDialect
from sqlalchemy.dialects.sqlite.base import SQLiteDialect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.schema import CreateTable

from app.chat.conversations import ConversationManager
from app.chat.models import Conversation, ConversationMember, Message
from app.core.errors import DeadlineExceededError
from app.users.models import User


def test_ping(database):
    assert database.ping() is True


def test_transaction_rolls_back_on_error(database):
    with pytest.raises(RuntimeError):
        with database.transaction() as session:
            session.add(User(name="ghost", photo_url=""))
            session.flush()
            raise RuntimeError("boom")

    with database.transaction() as session:
        assert session.scalar(select(func.count()).select_from(User)) == 0


def test_expired_deadline_leaves_no_partial_state(database, alice, bob):
    manager = ConversationManager(database, timeout=0)

    with pytest.raises(DeadlineExceededError):
        manager.create_group(alice, "Late", [bob])

    with database.transaction() as session:
        assert session.scalar(select(func.count()).select_from(Conversation)) == 0
        assert session.scalar(select(func.count()).select_from(ConversationMember)) == 0


def test_generous_deadline_does_not_interfere(database, alice, bob):
    manager = ConversationManager(database, timeout=30)

    group_id = manager.create_group(alice, "On time", [bob])

    with database.transaction() as session:
        assert session.get(Conversation, group_id).name == "On time"


def test_foreign_keys_are_enforced(database):
    with pytest.raises(IntegrityError):
        with database.transaction() as session:
            session.add(ConversationMember(conversation_id=1, user_id=1, is_admin=False))
            session.flush()


def test_timestamps_use_the_statement_clock():
    postgres_ddl = str(CreateTable(Message.__table__).compile(dialect=PGDialect()))
    sqlite_ddl = str(CreateTable(Message.__table__).compile(dialect=SQLiteDialect()))

    assert "DEFAULT clock_timestamp()" in postgres_ddl
    assert "now()" not in postgres_ddl
    assert "CURRENT_TIMESTAMP" in sqlite_ddl

    members_ddl = str(CreateTable(ConversationMember.__table__).compile(dialect=PGDialect()))
    assert "DEFAULT clock_timestamp()" in members_ddl


def test_message_timestamps_follow_insertion_order(database, messages, conversations, alice, bob):
    conversation_id, _ = conversations.create_or_get_direct(alice, bob)
    ids = [messages.create_message(conversation_id, alice, f"m{i}") for i in range(3)]

    with database.transaction() as session:
        stamps = session.scalars(
            select(Message.timestamp).where(Message.id.in_(ids)).order_by(Message.id)
        ).all()

    assert all(stamp is not None for stamp in stamps)
    assert stamps == sorted(stamps)
