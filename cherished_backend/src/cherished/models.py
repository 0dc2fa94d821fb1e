from __future__ import annotations

from datetime import datetime
from typing import TypedDict


# PUBLIC_INTERFACE
class TrackedDateEntity(TypedDict):
    """
    A stored cherished date, as held by the storage backends.

    Fields:
    - id: Opaque unique identifier (hex string)
    - owner_id: Identity of the user the date belongs to
    - title: Display title (1..200 chars, trimmed on input via schemas)
    - date: Original calendar date as a 'YYYY-MM-DD' string
    - type: Recurrence kind value: 'yearly', 'monthly' or 'one-time'
    - created_at: Creation timestamp
    - updated_at: Last update timestamp
    """

    id: str
    owner_id: str
    title: str
    date: str
    type: str
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class FriendRequestEntity(TypedDict):
    """
    A friend request between two users.

    status is one of 'pending', 'accepted', 'rejected'. Accepted requests are
    the friendship links themselves.
    """

    id: str
    from_user_id: str
    to_user_id: str
    status: str
    created_at: datetime
    updated_at: datetime
