"""Pytest configuration for the test suite."""

import os
import sys

# Add the src directory to the Python path so tests can import from it
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src'))

# Must be set before inbox_bridge.config is imported
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")

import pytest

from inbox_bridge.crypto import TokenCipher
from inbox_bridge.models import AuthProvider, User
from inbox_bridge.users import store_credentials

from fakes import InMemoryUserRepository


@pytest.fixture(scope="session")
def cipher():
    """Key derivation is slow-ish, so one cipher serves the whole session."""
    return TokenCipher("test-encryption-key")


@pytest.fixture
def users():
    return InMemoryUserRepository()


@pytest.fixture
def make_user(users, cipher):
    """Create and store a user bound to a provider with encrypted tokens."""

    def _make(
        provider=AuthProvider.GOOGLE,
        access_token="access-token",
        refresh_token="refresh-token",
        email="Jane.Doe@Example.com",
        user_id="user-1",
    ):
        user = User(id=user_id, name="Jane Doe", email=email, auth_provider=provider)
        if provider != AuthProvider.LOCAL:
            if access_token:
                store_credentials(user, provider, access_token, refresh_token, cipher)
            elif refresh_token:
                setattr(user, f"{provider.value}_refresh_token", cipher.encrypt(refresh_token))
        users.create(user)
        return user

    return _make
