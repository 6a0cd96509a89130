"""Process-wide collaborators, built once on first use."""

from dataclasses import dataclass
from functools import lru_cache

from .crypto import TokenCipher, get_token_cipher
from .llm import LiteLLMTextGenerator, TextGenerator
from .repository import MongoUserRepository, UserRepository, get_database
from .token_refresh import TokenRefresher


@dataclass
class AppContext:
    """Everything a request needs to build and drive an email service."""
    users: UserRepository
    cipher: TokenCipher
    refresher: TokenRefresher
    text_generator: TextGenerator


def get_user_repository() -> UserRepository:
    repository = MongoUserRepository(get_database())
    repository.ensure_indexes()
    return repository


@lru_cache(maxsize=1)
def get_app_context() -> AppContext:
    users = get_user_repository()
    cipher = get_token_cipher()
    return AppContext(
        users=users,
        cipher=cipher,
        refresher=TokenRefresher(users, cipher),
        text_generator=LiteLLMTextGenerator(),
    )
