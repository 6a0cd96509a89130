"""User persistence: a repository protocol and its MongoDB implementation."""

import logging
import uuid
from dataclasses import asdict
from typing import Any, Dict, Optional, Protocol

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from . import config
from .errors import BadRequestError, InternalError
from .models import Subscription, SubscriptionPlan, User, utcnow

logger = logging.getLogger(__name__)

# Driver-level logs are noisy at INFO
logging.getLogger("pymongo").setLevel(logging.WARNING)


def new_user_id() -> str:
    return uuid.uuid4().hex


class UserRepository(Protocol):
    """Protocol defining the interface for user data access."""

    def find_by_id(self, user_id: str) -> Optional[User]:
        """Find a user by ID. Return User or None if not found."""
        ...

    def find_by_email(self, email: str) -> Optional[User]:
        """Find a user by (lowercased) email. Return User or None if not found."""
        ...

    def create(self, user: User) -> User:
        """Insert a new user document and return it."""
        ...

    def save(self, user: User) -> User:
        """Persist every field of an existing user and return it."""
        ...


class MongoUserRepository:
    """Stores one document per user in the ``users`` collection."""

    def __init__(self, db: Database):
        self.collection = db[config.USERS_COLLECTION_NAME]

    def ensure_indexes(self) -> None:
        """Create the unique email index and the created_at index."""
        try:
            self.collection.create_index(
                [("email", ASCENDING)], name="idx_users_email", unique=True
            )
            self.collection.create_index(
                [("created_at", DESCENDING)], name="idx_users_created_at"
            )
        except PyMongoError as e:
            logger.error(f"Failed to create users indexes: {e!s}")
            raise InternalError("Failed to create users indexes") from e

    def _to_domain(self, doc: Dict[str, Any]) -> User:
        """Convert MongoDB document to User domain model."""
        data = dict(doc)
        user_id = data.pop("_id")
        subscription = data.pop("subscription", None) or {}
        if "plan" in subscription:
            subscription["plan"] = SubscriptionPlan(subscription["plan"])
        return User(id=user_id, subscription=Subscription(**subscription), **data)

    def _to_document(self, user: User) -> Dict[str, Any]:
        doc = asdict(user)
        doc["_id"] = doc.pop("id")
        doc["auth_provider"] = user.auth_provider.value
        doc["role"] = user.role.value
        doc["subscription"]["plan"] = user.subscription.plan.value
        return doc

    def find_by_id(self, user_id: str) -> Optional[User]:
        try:
            doc = self.collection.find_one({"_id": user_id})
        except PyMongoError as e:
            logger.error(f"Failed to get user by ID {user_id}: {e!s}")
            raise InternalError("Failed to load user") from e
        return self._to_domain(doc) if doc else None

    def find_by_email(self, email: str) -> Optional[User]:
        try:
            doc = self.collection.find_one({"email": email.strip().lower()})
        except PyMongoError as e:
            logger.error(f"Failed to get user by email: {e!s}")
            raise InternalError("Failed to load user") from e
        return self._to_domain(doc) if doc else None

    def create(self, user: User) -> User:
        try:
            self.collection.insert_one(self._to_document(user))
        except DuplicateKeyError as e:
            logger.warning(f"User creation failed: email already exists ({user.email})")
            raise BadRequestError("A user with this email already exists") from e
        except PyMongoError as e:
            logger.error(f"Failed to create user: {e!s}")
            raise InternalError("Failed to create user") from e
        logger.info(f"User created: {user.id}")
        return user

    def save(self, user: User) -> User:
        user.updated_at = utcnow()
        doc = self._to_document(user)
        try:
            self.collection.replace_one({"_id": doc["_id"]}, doc, upsert=True)
        except PyMongoError as e:
            logger.error(f"Failed to save user {user.id}: {e!s}")
            raise InternalError("Failed to save user") from e
        return user


def get_database(url: Optional[str] = None, name: Optional[str] = None) -> Database:
    """Connect to MongoDB and return the configured database.

    Raises:
        InternalError: If the server cannot be reached
    """
    client: MongoClient = MongoClient(
        url or config.MONGO_URL,
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=5000,
        tz_aware=True,
    )
    try:
        client.admin.command("ping")
    except PyMongoError as e:
        logger.error(f"MongoDB connection failed: {str(e)[:200]}")
        raise InternalError("Failed to connect to MongoDB") from e
    db_name = name or config.MONGODB_DATABASE
    logger.info(f"Connected to MongoDB database {db_name}")
    return client[db_name]
