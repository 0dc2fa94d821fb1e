from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .recurrence import (
    DateStatus,
    RecurrenceKind,
    StatusCategory,
    format_calendar_date,
    parse_calendar_date,
)

# Incoming calendar dates may arrive as an ISO 'YYYY-MM-DD' string or a date
CalendarDateInput = Union[date, str]


def _normalize_calendar_date(value: Optional[CalendarDateInput]) -> Optional[str]:
    """
    Internal helper to normalize a date-only input into its canonical
    'YYYY-MM-DD' string. InvalidDateFormat is a ValueError, so pydantic
    reports it as a regular validation error.
    """
    if value is None:
        return None
    return format_calendar_date(parse_calendar_date(value))


def _clean_title(v: str) -> str:
    s = v.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("title length must be between 1 and 200 characters")
    return s


# PUBLIC_INTERFACE
class TrackedDateCreate(BaseModel):
    """
    Schema for creating a new tracked date.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Mum's birthday",
                "date": "1962-08-14",
                "type": "yearly",
            }
        }
    )

    title: str = Field(..., description="Display title of the date", min_length=1, max_length=200)
    date: str = Field(..., description="Original calendar date, 'YYYY-MM-DD' (no time, no offset)")
    type: RecurrenceKind = Field(..., description="Recurrence kind: yearly, monthly or one-time")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        if v is None:
            raise ValueError("title is required")
        return _clean_title(v)

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v: Optional[CalendarDateInput]) -> Optional[str]:
        """
        Normalize the date to 'YYYY-MM-DD', rejecting impossible days.
        """
        return _normalize_calendar_date(v)


# PUBLIC_INTERFACE
class TrackedDateUpdate(BaseModel):
    """
    Schema for updating an existing tracked date.
    Only title and date may change; the recurrence type is fixed at creation
    and unknown fields (including 'type') are rejected.
    """

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "title": "Wedding anniversary",
                "date": "2015-06-20",
            }
        },
    )

    title: Optional[str] = Field(default=None, description="Display title of the date", min_length=1, max_length=200)
    date: Optional[str] = Field(default=None, description="Original calendar date, 'YYYY-MM-DD'")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        """
        If title is provided, strip whitespace and enforce 1..200 length.
        """
        if v is None:
            return v
        return _clean_title(v)

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v: Optional[CalendarDateInput]) -> Optional[str]:
        return _normalize_calendar_date(v)


# PUBLIC_INTERFACE
class DateStatusOut(BaseModel):
    """
    Values derived by the recurrence engine for one date on a given day.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "today": "2026-08-10",
                "next_occurrence": "2026-08-14",
                "days_until": 4,
                "category": "upcoming",
                "label": "In 4 days",
                "type_label": "Yearly",
                "years_elapsed": 63,
            }
        }
    )

    today: date = Field(..., description="Calendar day the status was computed for")
    next_occurrence: date = Field(..., description="Next occurrence (original date for one-time)")
    days_until: int = Field(..., description="Signed day offset; negative means overdue")
    category: StatusCategory = Field(..., description="overdue, today, upcoming or future")
    label: str = Field(..., description="Human status phrase, e.g. 'Tomorrow'")
    type_label: str = Field(..., description="Display name of the recurrence kind")
    years_elapsed: Optional[int] = Field(
        default=None, description="Completed anniversaries (yearly dates only)"
    )

    @classmethod
    def from_status(cls, status: DateStatus, today: date) -> "DateStatusOut":
        return cls(
            today=today,
            next_occurrence=status.next_occurrence,
            days_until=status.days_until,
            category=status.category,
            label=status.label,
            type_label=status.kind.label,
            years_elapsed=status.years_elapsed,
        )


# PUBLIC_INTERFACE
class TrackedDateOut(BaseModel):
    """
    Schema returned by the API for a tracked date, with its current status.
    """

    id: str = Field(..., description="Unique identifier of the tracked date")
    title: str = Field(..., description="Display title of the date")
    date: str = Field(..., description="Original calendar date, 'YYYY-MM-DD'")
    type: RecurrenceKind = Field(..., description="Recurrence kind")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")
    status: DateStatusOut = Field(..., description="Derived status as of 'today'")


# PUBLIC_INTERFACE
class FriendRequestCreate(BaseModel):
    """
    Schema for sending a friend request.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"to_user_id": "alice"}})

    to_user_id: str = Field(..., description="Identity of the user to befriend", min_length=1, max_length=200)

    @field_validator("to_user_id")
    @classmethod
    def strip_user_id(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("to_user_id must not be blank")
        return s


# PUBLIC_INTERFACE
class FriendRequestOut(BaseModel):
    """
    Schema returned by the API for a friend request.
    """

    id: str = Field(..., description="Unique identifier of the request")
    from_user_id: str = Field(..., description="Sender identity")
    to_user_id: str = Field(..., description="Recipient identity")
    status: str = Field(..., description="pending, accepted or rejected")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last status change timestamp")


# PUBLIC_INTERFACE
class FriendOut(BaseModel):
    """
    An accepted friend of the caller.
    """

    user_id: str = Field(..., description="Identity of the friend")
    request_id: str = Field(..., description="The accepted request linking both users")
    since: datetime = Field(..., description="When the request was accepted")
