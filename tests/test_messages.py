import pytest
from sqlalchemy import func, select

from app.chat.conversations import FORBIDDEN
from app.chat.messages import FORWARDED
from app.chat.models import Conversation, Message, MessageReaction
from app.core.errors import (
    ConversationNotFoundError,
    InvalidArgumentError,
    MessageNotFoundError,
    NotMemberError,
    ReactionNotFoundError,
    ReplyTargetNotFoundError,
)


@pytest.fixture()
def direct(conversations, alice, bob):
    conversation_id, _ = conversations.create_or_get_direct(alice, bob)
    return conversation_id


def load(database, model, key):
    with database.transaction() as session:
        return session.get(model, key)


def test_create_message_updates_last_message(database, messages, direct, alice, bob):
    first = messages.create_message(direct, alice, "hi")
    second = messages.create_message(direct, bob, "hello", reply_to_id=first)

    assert second > first
    assert load(database, Message, second).reply_to_id == first
    assert load(database, Conversation, direct).last_message_id == second


def test_create_message_checks(messages, conversations, direct, alice, bob, carol):
    with pytest.raises(NotMemberError):
        messages.create_message(direct, carol, "let me in")

    with pytest.raises(ConversationNotFoundError):
        messages.create_message(404, alice, "anyone?")

    with pytest.raises(InvalidArgumentError):
        messages.create_message(direct, alice, "   ")

    with pytest.raises(ReplyTargetNotFoundError):
        messages.create_message(direct, alice, "re: nothing", reply_to_id=12345)

    # A reply target in another conversation does not count
    other, _ = conversations.create_or_get_direct(alice, carol)
    elsewhere = messages.create_message(other, alice, "elsewhere")
    with pytest.raises(ReplyTargetNotFoundError):
        messages.create_message(direct, alice, "cross reply", reply_to_id=elsewhere)


def test_photo_message(database, messages, direct, alice):
    message_id = messages.create_photo_message(direct, alice, "/photos/conversations/1/a-cat.png")

    stored = load(database, Message, message_id)
    assert stored.is_photo is True
    assert stored.content == "/photos/conversations/1/a-cat.png"

    with pytest.raises(InvalidArgumentError):
        messages.create_photo_message(direct, alice, "")


def test_delete_message_only_by_sender(database, messages, direct, alice, bob):
    first = messages.create_message(direct, alice, "hi")
    reply = messages.create_message(direct, bob, "hello", reply_to_id=first)
    messages.add_reaction(first, bob, "👍")

    # Not the sender: indistinguishable from a missing message
    with pytest.raises(MessageNotFoundError):
        messages.delete_message(first, bob)
    with pytest.raises(MessageNotFoundError):
        messages.delete_message(9999, bob)

    messages.delete_message(first, alice)

    assert load(database, Message, first) is None
    assert load(database, Message, reply).reply_to_id is None
    assert load(database, MessageReaction, (first, bob)) is None


def test_delete_last_message_moves_pointer(database, messages, direct, alice):
    first = messages.create_message(direct, alice, "one")
    second = messages.create_message(direct, alice, "two")

    messages.delete_message(second, alice)
    assert load(database, Conversation, direct).last_message_id == first

    messages.delete_message(first, alice)
    assert load(database, Conversation, direct).last_message_id is None


def test_forward_to_many_reports_each_target(
    database, messages, conversations, direct, alice, bob, carol, dave
):
    original = messages.create_message(direct, alice, "hi")

    with_carol, _ = conversations.create_or_get_direct(alice, carol)
    not_mine, _ = conversations.create_or_get_direct(bob, dave)

    results = messages.forward_message_many(original, alice, [with_carol, not_mine])

    assert [r.outcome for r in results] == [FORWARDED, FORBIDDEN]
    assert isinstance(results[1].error, NotMemberError)

    copy = load(database, Message, results[0].message_id)
    assert copy.conversation_id == with_carol
    assert copy.content == "hi"
    assert copy.is_forwarded is True
    assert copy.reply_to_id is None


def test_forward_keeps_photo_kind(database, messages, conversations, direct, alice, carol):
    photo = messages.create_photo_message(direct, alice, "/photos/p.png")
    target, _ = conversations.create_or_get_direct(alice, carol)

    new_id = messages.forward_message(photo, alice, target)

    copy = load(database, Message, new_id)
    assert copy.is_photo is True
    assert copy.content == "/photos/p.png"


def test_forward_requires_access_to_original(messages, conversations, direct, alice, carol, dave):
    original = messages.create_message(direct, alice, "private")
    target, _ = conversations.create_or_get_direct(carol, dave)

    with pytest.raises(MessageNotFoundError):
        messages.forward_message(original, carol, target)

    results = messages.forward_message_many(999, alice, [direct, 12345])
    assert [r.outcome for r in results] == ["not_found", "not_found"]


def test_reaction_upsert_keeps_one_row(database, messages, direct, alice, bob):
    message_id = messages.create_message(direct, alice, "hi")

    messages.add_reaction(message_id, bob, "👍")
    messages.add_reaction(message_id, bob, "❤️")

    with database.transaction() as session:
        rows = session.scalars(
            select(MessageReaction).where(MessageReaction.message_id == message_id)
        ).all()
        assert [(r.user_id, r.reaction) for r in rows] == [(bob, "❤️")]


def test_reaction_failures(database, messages, direct, alice, bob, carol):
    message_id = messages.create_message(direct, alice, "hi")

    with pytest.raises(MessageNotFoundError):
        messages.add_reaction(777, bob, "👍")

    with pytest.raises(MessageNotFoundError):
        messages.add_reaction(message_id, carol, "👍")

    with pytest.raises(InvalidArgumentError):
        messages.add_reaction(message_id, bob, " ")

    with pytest.raises(ReactionNotFoundError):
        messages.remove_reaction(message_id, bob)

    messages.add_reaction(message_id, bob, "😂")
    messages.remove_reaction(message_id, bob)

    with database.transaction() as session:
        assert session.scalar(select(func.count()).select_from(MessageReaction)) == 0
