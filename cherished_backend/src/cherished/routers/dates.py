from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..auth import get_basic_auth_dependency, get_current_user_id
from ..models import TrackedDateEntity
from ..recurrence import (
    RecurrenceKind,
    StatusCategory,
    evaluate,
    parse_calendar_date,
)
from ..repositories import SORT_FIELDS, DateQuery, Repository, get_repository
from ..schemas import DateStatusOut, TrackedDateCreate, TrackedDateOut, TrackedDateUpdate
from ..settings import get_settings
from ..utils import pagination_envelope, resolve_today

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/dates",
    tags=["dates"],
    dependencies=[Depends(get_basic_auth_dependency())],
)

TODAY_DESCRIPTION = "Evaluate as of this calendar day (YYYY-MM-DD); defaults to today in APP_TIMEZONE"


class PaginationEnvelope(BaseModel):
    """
    Envelope for paginated list responses.
    """
    items: List[TrackedDateOut] = Field(..., description="List of tracked dates")
    total: int = Field(..., description="Total number of items matching the query")
    limit: int = Field(..., description="Limit applied to the query")
    offset: int = Field(..., description="Offset applied to the query")


class DatePreviewOut(BaseModel):
    """
    Engine output for an unsaved date.
    """
    date: str = Field(..., description="Normalized original date")
    type: RecurrenceKind = Field(..., description="Recurrence kind")
    status: DateStatusOut


def _get_repo(repo: Repository = Depends(get_repository)) -> Repository:
    """
    Dependency wrapper for repository to keep signatures clean.
    """
    return repo


def _today(today: Optional[str] = Query(None, description=TODAY_DESCRIPTION)) -> date:
    return resolve_today(today, get_settings().app_timezone)


def _to_out(entity: TrackedDateEntity, today: date) -> TrackedDateOut:
    result = evaluate(parse_calendar_date(entity["date"]), entity["type"], today)
    return TrackedDateOut(
        id=entity["id"],
        title=entity["title"],
        date=entity["date"],
        type=RecurrenceKind(entity["type"]),
        created_at=entity["created_at"],
        updated_at=entity["updated_at"],
        status=DateStatusOut.from_status(result, today),
    )


def _get_owned(repo: Repository, date_id: str, user_id: str) -> TrackedDateEntity:
    item = repo.get(date_id)
    # Other users' dates are indistinguishable from missing ones
    if not item or item["owner_id"] != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Date not found")
    return item


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TrackedDateOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Date",
    description="Track a new cherished date and return it with its current status.",
    responses={
        201: {"description": "Date created successfully"},
        422: {"description": "Validation error"},
    },
)
def create_date(
    payload: TrackedDateCreate,
    today: date = Depends(_today),
    user_id: str = Depends(get_current_user_id),
    repo: Repository = Depends(_get_repo),
) -> TrackedDateOut:
    """
    Create a new tracked date.
    """
    created = repo.create(user_id, payload)
    logger.info("user %s created %s date %s", user_id, created["type"], created["id"])
    return _to_out(created, today)


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=PaginationEnvelope,
    summary="List Dates",
    description=(
        "List the caller's dates with their current status.\n\n"
        "Query parameters:\n"
        "- limit: max number of items to return (0..1000)\n"
        "- offset: number of items to skip (>=0)\n"
        "- type: filter by recurrence kind (yearly, monthly, one-time)\n"
        "- category: filter by status (overdue, today, upcoming, future)\n"
        "- q: search text for title (substring match)\n"
        "- sort: next_occurrence (default), created_at, updated_at or title; prefix '-' for descending\n"
        "- today: evaluate as of this day instead of the server's current date\n\n"
        "Returns a pagination envelope with items and total count."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        400: {"description": "Invalid query parameters"},
    },
)
def list_dates(
    limit: int = Query(50, ge=0, le=1000, description="Maximum number of items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
    type: Optional[RecurrenceKind] = Query(None, description="Filter by recurrence kind"),
    category: Optional[StatusCategory] = Query(None, description="Filter by status category"),
    q: Optional[str] = Query(None, description="Search text for title"),
    sort: Optional[str] = Query(
        "next_occurrence",
        description="Sort by field: next_occurrence, created_at, updated_at, title ('-' prefix for desc)",
    ),
    today: date = Depends(_today),
    user_id: str = Depends(get_current_user_id),
    repo: Repository = Depends(_get_repo),
) -> PaginationEnvelope:
    """
    List tracked dates with pagination, filters and status.
    """
    normalized_sort = (sort or "next_occurrence").strip().lower()
    field = normalized_sort[1:] if normalized_sort.startswith("-") else normalized_sort
    if field != "next_occurrence" and field not in SORT_FIELDS:
        raise HTTPException(
            status_code=400,
            detail="sort must be one of next_occurrence, created_at, updated_at, title",
        )
    by_occurrence = field == "next_occurrence"

    query = DateQuery(
        owner_id=user_id,
        type=type.value if type else None,
        search=q.strip() if q else None,
        sort="title" if by_occurrence else normalized_sort,
    )

    if not by_occurrence and category is None:
        # Storage can page directly
        items, total = repo.list(replace(query, limit=limit, offset=offset))
        outs = [_to_out(it, today) for it in items]
    else:
        items, _ = repo.list(replace(query, limit=None, offset=0))
        outs = [_to_out(it, today) for it in items]
        if category is not None:
            outs = [o for o in outs if o.status.category == category]
        if by_occurrence:
            # Stable sort over the title-ordered fetch keeps ties alphabetical
            outs.sort(key=lambda o: o.status.next_occurrence, reverse=normalized_sort.startswith("-"))
        total = len(outs)
        outs = outs[offset:offset + limit]

    envelope = pagination_envelope(items=outs, total=total, limit=limit, offset=offset)
    return PaginationEnvelope(**envelope)


# PUBLIC_INTERFACE
@router.get(
    "/preview",
    response_model=DatePreviewOut,
    summary="Preview Date Status",
    description="Run the recurrence engine on a date without storing it.",
    responses={
        200: {"description": "Status computed"},
        422: {"description": "Invalid date"},
    },
)
def preview_date(
    date_value: str = Query(..., alias="date", description="Original calendar date (YYYY-MM-DD)"),
    type: RecurrenceKind = Query(..., description="Recurrence kind"),
    today: date = Depends(_today),
) -> DatePreviewOut:
    """
    Evaluate next occurrence, offset, label and years elapsed for an ad-hoc date.
    """
    original = parse_calendar_date(date_value)
    result = evaluate(original, type, today)
    return DatePreviewOut(
        date=original.isoformat(),
        type=type,
        status=DateStatusOut.from_status(result, today),
    )


# PUBLIC_INTERFACE
@router.get(
    "/{date_id}",
    response_model=TrackedDateOut,
    summary="Get Date",
    description="Get a single tracked date by ID with its current status.",
    responses={
        200: {"description": "Date found"},
        404: {"description": "Date not found"},
    },
)
def get_date(
    date_id: str,
    today: date = Depends(_today),
    user_id: str = Depends(get_current_user_id),
    repo: Repository = Depends(_get_repo),
) -> TrackedDateOut:
    """
    Retrieve a single tracked date by its ID.
    """
    return _to_out(_get_owned(repo, date_id, user_id), today)


# PUBLIC_INTERFACE
@router.patch(
    "/{date_id}",
    response_model=TrackedDateOut,
    summary="Update Date",
    description="Change the title and/or original date. The recurrence type cannot change.",
    responses={
        200: {"description": "Date updated"},
        404: {"description": "Date not found"},
        422: {"description": "Validation error"},
    },
)
def patch_date(
    date_id: str,
    payload: TrackedDateUpdate,
    today: date = Depends(_today),
    user_id: str = Depends(get_current_user_id),
    repo: Repository = Depends(_get_repo),
) -> TrackedDateOut:
    """
    Partial update of a tracked date.
    """
    _get_owned(repo, date_id, user_id)
    updated = repo.update(date_id, payload)
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Date not found")
    logger.info("user %s updated date %s", user_id, date_id)
    return _to_out(updated, today)


# PUBLIC_INTERFACE
@router.delete(
    "/{date_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Date",
    description="Stop tracking a date.",
    responses={
        204: {"description": "Date deleted"},
        404: {"description": "Date not found"},
    },
)
def delete_date(
    date_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: Repository = Depends(_get_repo),
) -> None:
    """
    Delete a tracked date. Returns 204 on success, 404 if not found.
    """
    _get_owned(repo, date_id, user_id)
    if not repo.delete(date_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Date not found")
    logger.info("user %s deleted date %s", user_id, date_id)
    return None
