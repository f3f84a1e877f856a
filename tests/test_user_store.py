"""Tests for auth/store.py -- the UserStore repository.

Each test gets its own named in-memory database so counts and uniqueness
checks do not depend on test order.
"""

import itertools

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import UserStore

_ids = itertools.count()


@pytest.fixture
def store():
    s = UserStore(db_url=f"sqlite:///file:test_store_{next(_ids)}?mode=memory&cache=shared&uri=true")
    yield s
    s.close()


def _user(username: str, role: str = "viewer", **kw) -> User:
    return User(username=username, role=role, hashed_password="$2b$12$placeholder", **kw)


def test_empty_store_has_no_users(store: UserStore) -> None:
    assert not store.has_users()
    assert store.list_users() == []


def test_create_and_fetch(store: UserStore) -> None:
    user_id = store.create_user(_user("coach", "editor", email="coach@club.test", created_by="admin"))
    assert store.has_users()

    by_name = store.get_by_username("coach")
    by_id = store.get_by_id(user_id)
    assert by_name == by_id
    assert by_name.role == "editor"
    assert by_name.email == "coach@club.test"
    assert by_name.display_name == "coach"
    assert by_name.created_by == "admin"
    assert by_name.created_at
    assert by_name.last_login is None
    assert by_name.is_active is True


def test_missing_user_is_none(store: UserStore) -> None:
    assert store.get_by_username("ghost") is None
    assert store.get_by_id(999) is None


def test_username_lookup_is_case_sensitive(store: UserStore) -> None:
    store.create_user(_user("Coach"))
    assert store.get_by_username("coach") is None


def test_duplicate_username_raises(store: UserStore) -> None:
    store.create_user(_user("coach"))
    with pytest.raises(IntegrityError):
        store.create_user(_user("coach"))


def test_duplicate_email_raises(store: UserStore) -> None:
    store.create_user(_user("a", email="same@club.test"))
    with pytest.raises(IntegrityError):
        store.create_user(_user("b", email="same@club.test"))


def test_many_users_without_email(store: UserStore) -> None:
    store.create_user(_user("a"))
    store.create_user(_user("b"))
    assert [u.username for u in store.list_users()] == ["a", "b"]


def test_email_exists(store: UserStore) -> None:
    user_id = store.create_user(_user("a", email="a@club.test"))
    assert store.email_exists("a@club.test")
    assert not store.email_exists("a@club.test", exclude_user_id=user_id)
    assert not store.email_exists("b@club.test")


def test_list_users_ordered_by_username(store: UserStore) -> None:
    for name in ("zed", "amy", "mia"):
        store.create_user(_user(name))
    assert [u.username for u in store.list_users()] == ["amy", "mia", "zed"]


def test_update_user(store: UserStore) -> None:
    user_id = store.create_user(_user("a"))
    assert store.update_user(user_id, role="admin", display_name="Amy", is_active=False)
    user = store.get_by_id(user_id)
    assert (user.role, user.display_name, user.is_active) == ("admin", "Amy", False)


def test_update_user_without_fields_is_noop(store: UserStore) -> None:
    user_id = store.create_user(_user("a"))
    assert store.update_user(user_id) is False


def test_update_user_rejects_unknown_fields(store: UserStore) -> None:
    user_id = store.create_user(_user("a"))
    with pytest.raises(ValueError):
        store.update_user(user_id, username="renamed")


def test_update_missing_user_returns_false(store: UserStore) -> None:
    assert store.update_user(999, role="admin") is False


def test_count_active_admins(store: UserStore) -> None:
    store.create_user(_user("a1", "admin"))
    a2 = store.create_user(_user("a2", "admin"))
    store.create_user(_user("e1", "editor"))
    assert store.count_active_admins() == 2
    store.update_user(a2, is_active=False)
    assert store.count_active_admins() == 1


def test_delete_user(store: UserStore) -> None:
    user_id = store.create_user(_user("a"))
    assert store.delete_user(user_id)
    assert store.get_by_id(user_id) is None
    assert not store.delete_user(user_id)


def test_update_last_login(store: UserStore) -> None:
    user_id = store.create_user(_user("a"))
    store.update_last_login(user_id)
    assert store.get_by_id(user_id).last_login is not None
