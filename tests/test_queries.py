import pytest

from app.core.errors import ConversationNotFoundError, InvalidArgumentError, NotMemberError


def test_reply_scenario_returns_chronological_history(
    users, conversations, messages, queries
):
    alice, _ = users.login("alice")
    bob, _ = users.login("bob")
    assert (alice, bob) == (1, 2)

    conversation_id, _ = conversations.create_or_get_direct(alice, bob)
    m1 = messages.create_message(conversation_id, alice, "hi")
    m2 = messages.create_message(conversation_id, bob, "hello", reply_to_id=m1)

    conversation, history = queries.get_conversation_with_messages(conversation_id, alice)

    assert [m.id for m in history] == [m1, m2]
    assert history[1].reply_to_id == m1
    assert [m.sender_name for m in history] == ["alice", "bob"]
    assert conversation.kind == "direct"
    assert conversation.last_message.id == m2
    assert {m.name for m in conversation.members} == {"alice", "bob"}


def test_history_includes_reactions(conversations, messages, queries, alice, bob):
    conversation_id, _ = conversations.create_or_get_direct(alice, bob)
    message_id = messages.create_message(conversation_id, alice, "hi")
    messages.add_reaction(message_id, bob, "👍")
    messages.add_reaction(message_id, alice, "🎉")

    _, history = queries.get_conversation_with_messages(conversation_id, bob)

    assert [(r.user_id, r.reaction) for r in history[0].reactions] == [
        (alice, "🎉"),
        (bob, "👍"),
    ]


def test_history_pagination_counts_from_newest(conversations, messages, queries, alice, bob):
    conversation_id, _ = conversations.create_or_get_direct(alice, bob)
    ids = [messages.create_message(conversation_id, alice, f"m{i}") for i in range(5)]

    _, newest = queries.get_conversation_with_messages(conversation_id, alice, limit=2)
    assert [m.id for m in newest] == ids[3:]

    _, older = queries.get_conversation_with_messages(conversation_id, alice, limit=2, offset=2)
    assert [m.id for m in older] == ids[1:3]

    _, rest = queries.get_conversation_with_messages(conversation_id, alice, offset=4)
    assert [m.id for m in rest] == ids[:1]

    with pytest.raises(InvalidArgumentError):
        queries.get_conversation_with_messages(conversation_id, alice, offset=-1)


def test_history_requires_membership(conversations, queries, alice, bob, carol):
    conversation_id, _ = conversations.create_or_get_direct(alice, bob)

    with pytest.raises(NotMemberError):
        queries.get_conversation_with_messages(conversation_id, carol)

    with pytest.raises(ConversationNotFoundError):
        queries.get_conversation_with_messages(4040, alice)


def test_conversations_for_user(conversations, messages, queries, alice, bob, carol, dave):
    direct_ab, _ = conversations.create_or_get_direct(alice, bob)
    group = conversations.create_group(carol, "Team", [alice, bob])
    quiet, _ = conversations.create_or_get_direct(alice, dave)
    conversations.create_or_get_direct(bob, carol)

    messages.create_message(direct_ab, alice, "first")
    messages.create_message(group, carol, "latest")

    listed = queries.get_conversations_for_user(alice)

    assert [c.id for c in listed] == [group, direct_ab, quiet]

    team = listed[0]
    assert team.is_group
    assert team.name == "Team"
    assert team.last_message.content == "latest"
    assert {m.id: m.is_admin for m in team.members} == {alice: False, bob: False, carol: True}

    assert listed[2].last_message is None
    assert {m.id for m in listed[2].members} == {alice, dave}


def test_conversations_for_user_without_any(queries, alice):
    assert queries.get_conversations_for_user(alice) == []
