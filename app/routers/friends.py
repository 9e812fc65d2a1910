"""
Friends router: follow requests and the follow graph.

Every endpoint acts as the bearer of the access token. Listing endpoints
page with ?page (0-based) and ?size, newest edge first.
"""
from fastapi import APIRouter, Depends, Query

from app.core.dependencies import get_current_account_id, get_relationship_service
from app.schemas.auth import MessageResponse
from app.schemas.relationship import EdgeListResponse, FollowResponse, RelationshipStatusResponse
from app.services.relationship_service import RelationshipService

router = APIRouter()


def _page(items, page: int, size: int) -> EdgeListResponse:
    return EdgeListResponse(items=items, page=page, size=size, count=len(items))


# ── Listings ──────────────────────────────────────────────────────────────────

@router.get("/requests", response_model=EdgeListResponse)
def pending_requests(
    page: int = Query(0),
    size: int = Query(20),
    me: str = Depends(get_current_account_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Follow requests waiting for my answer."""
    return _page(service.list_pending_received(me, page, size), page, size)


@router.get("/followers", response_model=EdgeListResponse)
def my_followers(
    page: int = Query(0),
    size: int = Query(20),
    me: str = Depends(get_current_account_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    return _page(service.list_followers(me, page, size), page, size)


@router.get("/following", response_model=EdgeListResponse)
def my_following(
    page: int = Query(0),
    size: int = Query(20),
    me: str = Depends(get_current_account_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    return _page(service.list_following(me, page, size), page, size)


@router.get("/followers/{user_id}", response_model=EdgeListResponse)
def followers_of(
    user_id: str,
    page: int = Query(0),
    size: int = Query(20),
    me: str = Depends(get_current_account_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    return _page(service.list_followers(user_id, page, size), page, size)


@router.get("/following/{user_id}", response_model=EdgeListResponse)
def following_of(
    user_id: str,
    page: int = Query(0),
    size: int = Query(20),
    me: str = Depends(get_current_account_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    return _page(service.list_following(user_id, page, size), page, size)


@router.get("/status/{user_id}", response_model=RelationshipStatusResponse)
def relationship_status(
    user_id: str,
    me: str = Depends(get_current_account_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    return RelationshipStatusResponse(user_id=user_id, status=service.derive_status(me, user_id))


# ── Mutations ─────────────────────────────────────────────────────────────────

@router.post("/follow/{user_id}", response_model=FollowResponse, status_code=201)
def follow(
    user_id: str,
    me: str = Depends(get_current_account_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    edge = service.send_follow_request(me, user_id)
    return FollowResponse(message="Follow request sent", edge=edge)


@router.delete("/unfollow/{user_id}", response_model=MessageResponse)
def unfollow(
    user_id: str,
    me: str = Depends(get_current_account_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    """Idempotent: unfollowing someone you don't follow is not an error."""
    if service.unfollow(me, user_id):
        return {"message": "Unfollowed"}
    return {"message": "You were not following this user"}


@router.put("/accept/{edge_id}", response_model=FollowResponse)
def accept(
    edge_id: int,
    me: str = Depends(get_current_account_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    edge = service.accept_follow_request(edge_id, me)
    return FollowResponse(message="Follow request accepted", edge=edge)


@router.put("/reject/{edge_id}", response_model=FollowResponse)
def reject(
    edge_id: int,
    me: str = Depends(get_current_account_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    edge = service.reject_follow_request(edge_id, me)
    return FollowResponse(message="Follow request rejected", edge=edge)


@router.delete("/unfriend/{edge_id}", response_model=MessageResponse)
def unfriend(
    edge_id: int,
    me: str = Depends(get_current_account_id),
    service: RelationshipService = Depends(get_relationship_service),
):
    service.unfriend(edge_id, me)
    return {"message": "Relationship removed"}
