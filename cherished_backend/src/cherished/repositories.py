from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from threading import RLock
from typing import Dict, Iterable, List, Optional, Tuple

from .models import FriendRequestEntity, TrackedDateEntity
from .schemas import TrackedDateCreate, TrackedDateUpdate
from .settings import get_settings

logger = logging.getLogger(__name__)

SORT_FIELDS = {"created_at", "updated_at", "title"}
FRIEND_STATUSES = {"pending", "accepted", "rejected"}
# A request in one of these states blocks a new request between the same pair
BLOCKING_STATUSES = ("accepted", "pending")


class FriendLinkExists(Exception):
    """Raised by FriendRequestRepository.create when the pair is already linked."""

    def __init__(self, status: str) -> None:
        super().__init__(f"friend request already {status}")
        self.status = status


def _blocking_status(requests: Iterable[FriendRequestEntity]) -> Optional[str]:
    statuses = {r["status"] for r in requests}
    for status in BLOCKING_STATUSES:
        if status in statuses:
            return status
    return None


@dataclass(frozen=True)
class DateQuery:
    """
    Query parameters for listing tracked dates.
    limit=None returns every match (used when the caller sorts by next occurrence).
    """
    owner_id: str
    limit: Optional[int] = 50
    offset: int = 0
    type: Optional[str] = None
    search: Optional[str] = None
    sort: str = "-created_at"  # allowed: created_at, updated_at, title (optionally '-' prefixed)


def _normalize_sort(sort: Optional[str]) -> Tuple[str, bool]:
    sort_key = sort.strip().lower() if sort else "-created_at"
    reverse = sort_key.startswith("-")
    field = sort_key[1:] if reverse else sort_key
    if field not in SORT_FIELDS:
        field = "created_at"
    return field, reverse


def _new_id() -> str:
    return uuid.uuid4().hex


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract repository contract for tracked date storage backends."""

    @abstractmethod
    def create(self, owner_id: str, data: TrackedDateCreate) -> TrackedDateEntity:
        """Create and return a new TrackedDateEntity owned by owner_id."""

    @abstractmethod
    def get(self, date_id: str) -> Optional[TrackedDateEntity]:
        """Return a TrackedDateEntity by id, or None if not found."""

    @abstractmethod
    def update(self, date_id: str, data: TrackedDateUpdate) -> Optional[TrackedDateEntity]:
        """Update title/date of an existing entity. Return updated entity or None if not found."""

    @abstractmethod
    def delete(self, date_id: str) -> bool:
        """Delete a TrackedDateEntity by id. Return True if deleted, False if not found."""

    @abstractmethod
    def list(self, query: DateQuery) -> Tuple[List[TrackedDateEntity], int]:
        """
        Return a slice of the owner's dates and the total count matching filters.
        - Supports limit/offset
        - Filter by recurrence type
        - Case-insensitive substring search on title
        - Sorting by created_at/updated_at/title (asc/desc)
        """


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, TrackedDateEntity] = {}

    def _now(self) -> datetime:
        return datetime.now()

    def create(self, owner_id: str, data: TrackedDateCreate) -> TrackedDateEntity:
        now = self._now()
        entity: TrackedDateEntity = {
            "id": _new_id(),
            "owner_id": owner_id,
            "title": data.title,
            "date": data.date,
            "type": data.type.value,
            "created_at": now,
            "updated_at": now,
        }
        with self._lock:
            self._items[entity["id"]] = entity
        return entity.copy()

    def get(self, date_id: str) -> Optional[TrackedDateEntity]:
        with self._lock:
            item = self._items.get(date_id)
            return None if item is None else item.copy()

    def update(self, date_id: str, data: TrackedDateUpdate) -> Optional[TrackedDateEntity]:
        with self._lock:
            existing = self._items.get(date_id)
            if existing is None:
                return None

            # Update only provided fields
            updated = existing.copy()
            if data.title is not None:
                updated["title"] = data.title
            if data.date is not None:
                updated["date"] = data.date
            updated["updated_at"] = self._now()

            self._items[date_id] = updated
            return updated.copy()

    def delete(self, date_id: str) -> bool:
        with self._lock:
            return self._items.pop(date_id, None) is not None

    def list(self, query: DateQuery) -> Tuple[List[TrackedDateEntity], int]:
        q = query
        with self._lock:
            items: Iterable[TrackedDateEntity] = [
                t for t in self._items.values() if t["owner_id"] == q.owner_id
            ]

            # Filtering
            if q.type is not None:
                items = [t for t in items if t["type"] == q.type]

            if q.search:
                s = q.search.lower()
                items = [t for t in items if s in t["title"].lower()]

            items = list(items)
            total = len(items)

            # Sorting
            field, reverse = _normalize_sort(q.sort)
            if field == "title":
                items_sorted = sorted(items, key=lambda t: t["title"].lower(), reverse=reverse)
            else:
                items_sorted = sorted(items, key=lambda t: t[field], reverse=reverse)

            # Pagination
            start = max(q.offset, 0)
            page = items_sorted[start:] if q.limit is None else items_sorted[start:start + max(q.limit, 0)]

            # Return copies to avoid external mutation
            return [t.copy() for t in page], total


# PUBLIC_INTERFACE
class FriendRequestRepository(ABC):
    """Abstract repository contract for friend requests."""

    @abstractmethod
    def create(self, from_user_id: str, to_user_id: str) -> FriendRequestEntity:
        """
        Create and return a new pending request.
        Raises FriendLinkExists when a pending or accepted request already links
        the two users in either direction; the check and the insert are atomic.
        """

    @abstractmethod
    def get(self, request_id: str) -> Optional[FriendRequestEntity]:
        """Return a request by id, or None if not found."""

    @abstractmethod
    def set_status(
        self, request_id: str, status: str, expected_status: Optional[str] = None
    ) -> Optional[FriendRequestEntity]:
        """
        Change a request's status. Return the updated request, or None if it is
        not found or (when expected_status is given) no longer in that status.
        """

    @abstractmethod
    def find_between(self, user_a: str, user_b: str) -> List[FriendRequestEntity]:
        """Return every request between two users, in either direction."""

    @abstractmethod
    def list_for_user(
        self, user_id: str, status: Optional[str] = None, direction: str = "any"
    ) -> List[FriendRequestEntity]:
        """
        Return requests involving user_id, oldest first.
        direction: 'incoming' (user is recipient), 'outgoing' (user is sender) or 'any'.
        """


def _involves(item: FriendRequestEntity, user_id: str, direction: str) -> bool:
    if direction == "incoming":
        return item["to_user_id"] == user_id
    if direction == "outgoing":
        return item["from_user_id"] == user_id
    return user_id in (item["from_user_id"], item["to_user_id"])


class InMemoryFriendRequestRepository(FriendRequestRepository):
    """
    Thread-safe in-memory friend request store.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, FriendRequestEntity] = {}

    def _now(self) -> datetime:
        return datetime.now()

    def create(self, from_user_id: str, to_user_id: str) -> FriendRequestEntity:
        now = self._now()
        entity: FriendRequestEntity = {
            "id": _new_id(),
            "from_user_id": from_user_id,
            "to_user_id": to_user_id,
            "status": "pending",
            "created_at": now,
            "updated_at": now,
        }
        with self._lock:
            blocking = _blocking_status(self._between(from_user_id, to_user_id))
            if blocking is not None:
                raise FriendLinkExists(blocking)
            self._items[entity["id"]] = entity
        return entity.copy()

    def get(self, request_id: str) -> Optional[FriendRequestEntity]:
        with self._lock:
            item = self._items.get(request_id)
            return None if item is None else item.copy()

    def set_status(
        self, request_id: str, status: str, expected_status: Optional[str] = None
    ) -> Optional[FriendRequestEntity]:
        if status not in FRIEND_STATUSES:
            raise ValueError(f"unknown friend request status {status!r}")
        with self._lock:
            existing = self._items.get(request_id)
            if existing is None:
                return None
            if expected_status is not None and existing["status"] != expected_status:
                return None
            updated = existing.copy()
            updated["status"] = status
            updated["updated_at"] = self._now()
            self._items[request_id] = updated
            return updated.copy()

    def _between(self, user_a: str, user_b: str) -> List[FriendRequestEntity]:
        pair = {user_a, user_b}
        return [r for r in self._items.values() if {r["from_user_id"], r["to_user_id"]} == pair]

    def find_between(self, user_a: str, user_b: str) -> List[FriendRequestEntity]:
        with self._lock:
            return [r.copy() for r in self._between(user_a, user_b)]

    def list_for_user(
        self, user_id: str, status: Optional[str] = None, direction: str = "any"
    ) -> List[FriendRequestEntity]:
        with self._lock:
            items = [r for r in self._items.values() if _involves(r, user_id, direction)]
            if status is not None:
                items = [r for r in items if r["status"] == status]
            return [r.copy() for r in sorted(items, key=lambda r: r["created_at"])]


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_repository() -> Repository:
    """
    Return the configured tracked date repository (one instance per process).
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository
    Call get_repository.cache_clear() to rebuild it after settings change.
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        logger.info("using sqlite date repository at %s", settings.sqlite_db_path)
        return SQLiteRepository(settings.sqlite_db_path)
    return InMemoryRepository()


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_friend_repository() -> FriendRequestRepository:
    """Return the configured friend request repository (one instance per process)."""
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteFriendRequestRepository

        return SQLiteFriendRequestRepository(settings.sqlite_db_path)
    return InMemoryFriendRequestRepository()
