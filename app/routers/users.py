"""
Users router: profile lookup, search, and admin soft delete/restore.

Endpoints:
  GET    /api/users/me            → current account
  PATCH  /api/users/me            → update display name, description, place, image
  GET    /api/users/search?q=     → substring search on name, handle, email
  GET    /api/users/deleted       → deactivated accounts (admin)
  GET    /api/users/{id}          → one live account
  DELETE /api/users/{id}          → soft delete, status 1 → 0 (admin)
  PATCH  /api/users/{id}/restore  → status 0 → 1 (admin)

Static paths are declared before /{id} so they are not captured by it.
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from app.core.dependencies import get_account_service, get_current_account_id, require_admin
from app.schemas.account import AccountOut, UpdateProfileRequest
from app.services.account_service import AccountService

router = APIRouter()


@router.get("/me", response_model=AccountOut)
def get_me(
    me: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
):
    return service.get_account(me)


@router.patch("/me", response_model=AccountOut)
def update_me(
    body: UpdateProfileRequest,
    me: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
):
    """Only provided fields are changed. A deactivated account cannot be edited."""
    return service.update_profile(me, body.model_dump(exclude_none=True))


@router.get("/search", response_model=List[AccountOut])
def search_users(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    me: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
):
    return service.search_accounts(q, limit)


@router.get("/deleted", response_model=List[AccountOut])
def list_deleted_users(
    limit: int = Query(50, ge=1, le=200),
    _admin: dict = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
):
    return service.list_deleted(limit)


@router.get("/{account_id}", response_model=AccountOut)
def get_user(
    account_id: str,
    me: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
):
    return service.get_account(account_id)


@router.delete("/{account_id}", response_model=AccountOut)
def soft_delete_user(
    account_id: str,
    _admin: dict = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
):
    return service.soft_delete(account_id)


@router.patch("/{account_id}/restore", response_model=AccountOut)
def restore_user(
    account_id: str,
    _admin: dict = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
):
    return service.restore(account_id)
