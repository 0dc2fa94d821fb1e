from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..auth import get_basic_auth_dependency, get_current_user_id
from ..models import FriendRequestEntity
from ..repositories import FriendLinkExists, FriendRequestRepository, get_friend_repository
from ..schemas import FriendOut, FriendRequestCreate, FriendRequestOut

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/friends",
    tags=["friends"],
    dependencies=[Depends(get_basic_auth_dependency())],
)


def _get_repo(repo: FriendRequestRepository = Depends(get_friend_repository)) -> FriendRequestRepository:
    return repo


def _decide(
    request_id: str, new_status: str, user_id: str, repo: FriendRequestRepository
) -> FriendRequestOut:
    item = repo.get(request_id)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend request not found")
    if item["to_user_id"] != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the recipient can answer a friend request",
        )
    if item["status"] != "pending":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Friend request is already {item['status']}",
        )
    updated = repo.set_status(request_id, new_status, expected_status="pending")
    if not updated:
        # Answered or removed between the read and the conditional update
        current = repo.get(request_id)
        if current is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend request not found")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Friend request is already {current['status']}",
        )
    logger.info("user %s %s friend request %s from %s", user_id, new_status, request_id, item["from_user_id"])
    return FriendRequestOut(**updated)


def _friend_of(item: FriendRequestEntity, user_id: str) -> FriendOut:
    other = item["to_user_id"] if item["from_user_id"] == user_id else item["from_user_id"]
    return FriendOut(user_id=other, request_id=item["id"], since=item["updated_at"])


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=List[FriendOut],
    summary="List Friends",
    description="List users linked to the caller by an accepted friend request.",
)
def list_friends(
    user_id: str = Depends(get_current_user_id),
    repo: FriendRequestRepository = Depends(_get_repo),
) -> List[FriendOut]:
    """
    Accepted requests in either direction are friendships.
    """
    return [_friend_of(it, user_id) for it in repo.list_for_user(user_id, status="accepted")]


# PUBLIC_INTERFACE
@router.post(
    "/requests",
    response_model=FriendRequestOut,
    status_code=status.HTTP_201_CREATED,
    summary="Send Friend Request",
    description="Ask another user to become friends.",
    responses={
        201: {"description": "Request sent"},
        400: {"description": "Cannot befriend yourself"},
        409: {"description": "A pending request or friendship already exists"},
    },
)
def send_friend_request(
    payload: FriendRequestCreate,
    user_id: str = Depends(get_current_user_id),
    repo: FriendRequestRepository = Depends(_get_repo),
) -> FriendRequestOut:
    """
    Create a pending request from the caller to payload.to_user_id.
    """
    if payload.to_user_id == user_id:
        raise HTTPException(status_code=400, detail="Cannot send a friend request to yourself")
    # Rejected requests may be retried; pending/accepted links block a new one
    try:
        created = repo.create(user_id, payload.to_user_id)
    except FriendLinkExists as e:
        detail = "Already friends" if e.status == "accepted" else "Friend request already pending"
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail) from e
    logger.info("user %s sent friend request %s to %s", user_id, created["id"], payload.to_user_id)
    return FriendRequestOut(**created)


# PUBLIC_INTERFACE
@router.get(
    "/requests",
    response_model=List[FriendRequestOut],
    summary="List Pending Requests",
    description="Pending requests received by (incoming) or sent by (outgoing) the caller.",
)
def list_friend_requests(
    direction: str = Query("incoming", pattern="^(incoming|outgoing)$", description="incoming or outgoing"),
    user_id: str = Depends(get_current_user_id),
    repo: FriendRequestRepository = Depends(_get_repo),
) -> List[FriendRequestOut]:
    items = repo.list_for_user(user_id, status="pending", direction=direction)
    return [FriendRequestOut(**it) for it in items]


# PUBLIC_INTERFACE
@router.post(
    "/requests/{request_id}/accept",
    response_model=FriendRequestOut,
    summary="Accept Friend Request",
    responses={
        403: {"description": "Caller is not the recipient"},
        404: {"description": "Friend request not found"},
        409: {"description": "Request is not pending"},
    },
)
def accept_friend_request(
    request_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: FriendRequestRepository = Depends(_get_repo),
) -> FriendRequestOut:
    return _decide(request_id, "accepted", user_id, repo)


# PUBLIC_INTERFACE
@router.post(
    "/requests/{request_id}/reject",
    response_model=FriendRequestOut,
    summary="Reject Friend Request",
    responses={
        403: {"description": "Caller is not the recipient"},
        404: {"description": "Friend request not found"},
        409: {"description": "Request is not pending"},
    },
)
def reject_friend_request(
    request_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: FriendRequestRepository = Depends(_get_repo),
) -> FriendRequestOut:
    return _decide(request_id, "rejected", user_id, repo)
