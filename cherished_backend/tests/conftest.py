import os

import pytest

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from src.cherished.repositories import get_friend_repository, get_repository  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_repositories():
    # Repositories are process-wide singletons; start every test empty
    get_repository.cache_clear()
    get_friend_repository.cache_clear()
    yield
    get_repository.cache_clear()
    get_friend_repository.cache_clear()
