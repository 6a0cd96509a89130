"""Tests for MongoUserRepository with a mocked collection."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from inbox_bridge.errors import BadRequestError, InternalError
from inbox_bridge.models import AuthProvider, SubscriptionPlan, User, UserRole
from inbox_bridge.repository import MongoUserRepository, get_database, new_user_id

CREATED = datetime(2024, 10, 1, tzinfo=timezone.utc)

USER_DOC = {
    "_id": "user-1",
    "name": "Jane Doe",
    "email": "jane.doe@example.com",
    "auth_provider": "microsoft",
    "role": "USER",
    "google_id": None,
    "microsoft_id": "ms-1",
    "yahoo_id": None,
    "google_access_token": None,
    "microsoft_access_token": "aa:bb",
    "yahoo_access_token": None,
    "google_refresh_token": None,
    "microsoft_refresh_token": "cc:dd",
    "yahoo_refresh_token": None,
    "last_sync": CREATED,
    "created_at": CREATED,
    "updated_at": CREATED,
    "subscription": {"plan": "premium", "status": "ACTIVE", "daily_requests": 3},
}


@pytest.fixture
def collection():
    return MagicMock()


@pytest.fixture
def repository(collection):
    db = MagicMock()
    db.__getitem__.return_value = collection
    return MongoUserRepository(db)


class TestMapping:

    def test_document_to_user(self, repository, collection):
        collection.find_one.return_value = dict(USER_DOC)

        user = repository.find_by_id("user-1")

        collection.find_one.assert_called_once_with({"_id": "user-1"})
        assert user.id == "user-1"
        assert user.auth_provider is AuthProvider.MICROSOFT
        assert user.role is UserRole.USER
        assert user.microsoft_access_token == "aa:bb"
        assert user.subscription.plan is SubscriptionPlan.PREMIUM
        assert user.subscription.daily_requests == 3

    def test_missing_user(self, repository, collection):
        collection.find_one.return_value = None
        assert repository.find_by_id("nobody") is None

    def test_find_by_email_lowercases(self, repository, collection):
        collection.find_one.return_value = None
        repository.find_by_email("  Jane.Doe@Example.COM ")
        collection.find_one.assert_called_once_with({"email": "jane.doe@example.com"})


class TestWrites:

    def test_create_inserts_document(self, repository, collection):
        user = User(id="user-2", name="Bob", email="bob@example.com", auth_provider="yahoo")

        repository.create(user)

        doc = collection.insert_one.call_args.args[0]
        assert doc["_id"] == "user-2"
        assert "id" not in doc
        assert doc["auth_provider"] == "yahoo"
        assert doc["subscription"]["plan"] == "free"

    def test_duplicate_email(self, repository, collection):
        collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key error")
        user = User(id="user-2", name="Bob", email="bob@example.com", auth_provider="yahoo")

        with pytest.raises(BadRequestError):
            repository.create(user)

    def test_save_upserts_and_touches_updated_at(self, repository, collection):
        user = User(id="user-3", name="Ann", email="ann@example.com", auth_provider="google",
                    updated_at=CREATED)

        repository.save(user)

        query, doc = collection.replace_one.call_args.args
        assert query == {"_id": "user-3"}
        assert collection.replace_one.call_args.kwargs == {"upsert": True}
        assert doc["updated_at"] > CREATED

    def test_driver_errors_become_internal_errors(self, repository, collection):
        collection.find_one.side_effect = ServerSelectionTimeoutError("no servers")
        with pytest.raises(InternalError):
            repository.find_by_id("user-1")

    def test_ensure_indexes(self, repository, collection):
        repository.ensure_indexes()

        names = [c.kwargs["name"] for c in collection.create_index.call_args_list]
        assert names == ["idx_users_email", "idx_users_created_at"]
        assert collection.create_index.call_args_list[0].kwargs["unique"] is True


class TestConnection:

    def test_unreachable_server(self):
        with patch("inbox_bridge.repository.MongoClient") as client_cls:
            client_cls.return_value.admin.command.side_effect = ServerSelectionTimeoutError("timeout")
            with pytest.raises(InternalError, match="Failed to connect to MongoDB"):
                get_database("mongodb://db.invalid:27017")

    def test_returns_named_database(self):
        with patch("inbox_bridge.repository.MongoClient") as client_cls:
            db = get_database("mongodb://localhost:27017", "mail")
        client_cls.return_value.__getitem__.assert_called_once_with("mail")
        assert db is client_cls.return_value.__getitem__.return_value


def test_new_user_ids_are_unique():
    assert new_user_id() != new_user_id()
