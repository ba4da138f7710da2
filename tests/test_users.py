import pytest
from sqlalchemy import func, select

from app.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from app.users.models import User
from app.users.service import UserService
from conftest import run_concurrently


def test_login_registers_then_returns_same_id(users):
    alice_id, created = users.login("alice")
    assert created is True
    assert alice_id == 1

    bob_id, created = users.login("bob")
    assert created is True
    assert bob_id == 2

    again, created = users.login("alice")
    assert created is False
    assert again == alice_id


def test_login_rejects_empty_name(users):
    with pytest.raises(InvalidArgumentError):
        users.login("   ")


def test_set_name_conflict_and_missing_user(users, alice, bob):
    with pytest.raises(ConflictError):
        users.set_name(bob, "alice")

    with pytest.raises(NotFoundError):
        users.set_name(999, "nobody")

    users.set_name(bob, "robert")
    assert users.get_user(bob).name == "robert"


def test_set_photo(users, alice):
    users.set_photo(alice, "/photos/users/1/x-me.png")
    assert users.get_user(alice).photo_url == "/photos/users/1/x-me.png"

    with pytest.raises(NotFoundError):
        users.set_photo(42, "/photos/none.png")


def test_search_is_substring_and_capped(users):
    for i in range(25):
        users.login(f"member{i:02d}")
    users.login("someone")

    found = users.search_users("member")
    assert len(found) == 20
    assert all("member" in u.name for u in found)
    assert [u.name for u in found] == sorted(u.name for u in found)

    assert [u.name for u in users.search_users("eone")] == ["someone"]


def test_search_treats_wildcards_literally(users):
    users.login("ann")
    users.login("100%real")

    assert [u.name for u in users.search_users("%")] == ["100%real"]
    assert users.search_users("_") == []


def test_concurrent_login_registers_one_user(file_database):
    users = UserService(file_database)

    results, errors = run_concurrently(8, lambda index: users.login("alice"))

    assert errors == []
    assert len({user_id for user_id, _ in results}) == 1
    assert [created for _, created in results].count(True) == 1
    with file_database.transaction() as session:
        assert session.scalar(select(func.count()).select_from(User)) == 1


def test_login_losing_the_insert_returns_the_winner(users, monkeypatch):
    winner, _ = users.login("alice")

    lookups = []
    find_id_by_name = UserService._find_id_by_name

    def stale_first_lookup(self, name):
        lookups.append(name)
        # The first lookup ran before the other registration committed
        if len(lookups) == 1:
            return None
        return find_id_by_name(self, name)

    monkeypatch.setattr(UserService, "_find_id_by_name", stale_first_lookup)

    assert users.login("alice") == (winner, False)
    assert len(lookups) == 2
