"""Unit tests for auth/store.py -- SqlUserStore queries.

Covers:
- find_one() ANDs every condition and returns None on no match
- find_one() accepts (column, value) pairs with a repeated column
- find_one() loads contain tables by foreign key
- reflected tables work as user models
- unknown tables and columns raise ConfigurationError
- update_user() converts datetimes and reports missing rows
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from auth.errors import ConfigurationError
from auth.models import User


def test_find_one_returns_record_as_dict(store):
    record = store.find_one("users", {"user_name": "mariano"})
    assert record["id"] == 1
    assert record["email"] == "mariano@example.com"
    assert record["active"] is True


def test_find_one_ands_conditions(store):
    assert store.find_one("users", {"user_name": "larry", "active": False})["user_name"] == "larry"
    assert store.find_one("users", {"user_name": "larry", "active": True}) is None


def test_find_one_repeated_column_in_pairs(store):
    assert store.find_one("users", [("user_name", "mariano"), ("user_name", "nate")]) is None
    assert store.find_one("users", [("user_name", "nate"), ("user_name", "nate")])["id"] == 2


def test_find_one_no_match(store):
    assert store.find_one("users", {"user_name": "nobody"}) is None


def test_find_one_requires_conditions(store):
    with pytest.raises(ConfigurationError):
        store.find_one("users", {})


def test_unknown_column_raises(store):
    with pytest.raises(ConfigurationError):
        store.find_one("users", {"username": "mariano"})


def test_unknown_table_raises(store):
    with pytest.raises(ConfigurationError):
        store.find_one("members", {"user_name": "mariano"})


def test_contain_loads_related_rows(store):
    with store.engine.connect() as conn:
        conn.execute(text("CREATE TABLE user_groups (id INTEGER PRIMARY KEY, user_id INTEGER, name TEXT)"))
        conn.execute(text("INSERT INTO user_groups (user_id, name) VALUES (1, 'admins'), (1, 'editors'), (2, 'users')"))
        conn.commit()

    record = store.find_one("users", {"user_name": "mariano"}, contain=["user_groups"])
    assert sorted(g["name"] for g in record["user_groups"]) == ["admins", "editors"]


def test_contain_without_foreign_key_raises(store):
    with store.engine.connect() as conn:
        conn.execute(text("CREATE TABLE tags (id INTEGER PRIMARY KEY, label TEXT)"))
        conn.commit()
    with pytest.raises(ConfigurationError):
        store.find_one("users", {"user_name": "mariano"}, contain=["tags"])


def test_reflected_table_as_user_model(store):
    with store.engine.connect() as conn:
        conn.execute(text("CREATE TABLE members (id INTEGER PRIMARY KEY, login TEXT, secret TEXT)"))
        conn.execute(text("INSERT INTO members (login, secret) VALUES ('ada', 'x')"))
        conn.commit()
    assert store.find_one("members", {"login": "ada"}) == {"id": 1, "login": "ada", "secret": "x"}


def test_create_user_rejects_duplicate_name(store):
    with pytest.raises(IntegrityError):
        store.create_user(User(user_name="mariano", email="other@example.com"))


def test_update_user_stores_datetime_as_iso(store):
    when = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert store.update_user(1, remember_me_token_created=when) is True
    record = store.find_one("users", {"id": 1})
    assert record["remember_me_token_created"] == when.isoformat()


def test_update_user_missing_row(store):
    assert store.update_user(999, email="ghost@example.com") is False


def test_update_user_unknown_column_raises(store):
    with pytest.raises(ConfigurationError):
        store.update_user(1, nickname="m")
