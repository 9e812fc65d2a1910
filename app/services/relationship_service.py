"""
Follow graph: directed edges in the `friend` table.

An edge id_user → friend_id is created Pending, becomes Done when the
recipient accepts, and is soft-deleted (status=0) on reject, unfollow or
unfriend. Soft-deleted rows are never reused.

Duplicate guard: by default a new request is refused when an active edge
exists in EITHER direction, even though the edge created is directional. This
means "B follows A back" cannot be requested once "A → B" exists; set
ALLOW_FOLLOW_BACK=true to check the same direction only. The same-direction
case is additionally enforced by a partial unique index, the reverse-direction
check is a plain read before the insert.
"""
import logging
from typing import List, Optional

from app.config import Settings, settings as default_settings
from app.core.exceptions import (
    DuplicateRecordError, ForbiddenException, NotFoundException, ValidationException,
)
from app.models.account import STATUS_ACTIVE, STATUS_PASSWORD_CHANGE_REQUIRED
from app.models.friend import DONE, PENDING
from app.schemas.relationship import EdgeRecord, RelationshipStatus
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)

FRIEND = "friend"
ACCOUNT = "account"
EDGE_ACTIVE = 1
EDGE_DELETED = 0
MAX_PAGE_SIZE = 100


class RelationshipService:
    def __init__(self, store: RecordStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or default_settings

    def _active_edge(self, from_id: str, to_id: str) -> Optional[EdgeRecord]:
        row = self.store.fetch_one(FRIEND, {"id_user": from_id, "friend_id": to_id, "status": EDGE_ACTIVE})
        return EdgeRecord.model_validate(row) if row else None

    def _edge_by_id(self, edge_id: int) -> EdgeRecord:
        row = self.store.fetch_one(FRIEND, {"id": edge_id, "status": EDGE_ACTIVE})
        if not row:
            raise NotFoundException("Follow request")
        return EdgeRecord.model_validate(row)

    def _soft_delete(self, edge_id: int) -> EdgeRecord:
        updated = self.store.update(FRIEND, {"id": edge_id, "status": EDGE_ACTIVE}, {"status": EDGE_DELETED})
        if not updated:
            raise NotFoundException("Follow request")
        return EdgeRecord.model_validate(updated[0])

    # ── Mutations ─────────────────────────────────────────────────────────────

    def send_follow_request(self, from_id: str, to_id: str) -> EdgeRecord:
        if from_id == to_id:
            raise ValidationException("You cannot follow yourself")
        target = self.store.fetch_one(
            ACCOUNT, {"id": to_id, "status": [STATUS_ACTIVE, STATUS_PASSWORD_CHANGE_REQUIRED]}
        )
        if not target:
            raise NotFoundException("Account")

        exists = self._active_edge(from_id, to_id) is not None
        if not exists and not self.settings.allow_follow_back:
            exists = self._active_edge(to_id, from_id) is not None
        if exists:
            raise ValidationException("A follow request already exists between these accounts")

        try:
            row = self.store.insert(FRIEND, {
                "id_user": from_id,
                "friend_id": to_id,
                "status_fr": PENDING,
                "status": EDGE_ACTIVE,
            })
        except DuplicateRecordError:
            raise ValidationException("A follow request already exists between these accounts")

        logger.info(f"Follow request {row['id']}: {from_id} -> {to_id}")
        return EdgeRecord.model_validate(row)

    def accept_follow_request(self, edge_id: int, acting_id: str) -> EdgeRecord:
        """Only the recipient (friend_id) may accept."""
        edge = self._edge_by_id(edge_id)
        if edge.friend_id != acting_id:
            raise ForbiddenException("Only the recipient can accept this request")
        updated = self.store.update(FRIEND, {"id": edge_id, "status": EDGE_ACTIVE}, {"status_fr": DONE})
        if not updated:
            raise NotFoundException("Follow request")
        return EdgeRecord.model_validate(updated[0])

    def reject_follow_request(self, edge_id: int, acting_id: str) -> EdgeRecord:
        """Recipient only; the edge is soft-deleted, status_fr is left as is."""
        edge = self._edge_by_id(edge_id)
        if edge.friend_id != acting_id:
            raise ForbiddenException("Only the recipient can reject this request")
        return self._soft_delete(edge_id)

    def unfollow(self, from_id: str, to_id: str) -> bool:
        """False when there was nothing to unfollow."""
        edge = self._active_edge(from_id, to_id)
        if edge is None:
            return False
        updated = self.store.update(FRIEND, {"id": edge.id, "status": EDGE_ACTIVE}, {"status": EDGE_DELETED})
        return bool(updated)

    def unfriend(self, edge_id: int, acting_id: str) -> bool:
        """Legacy: either endpoint may remove the edge, Pending or Done."""
        edge = self._edge_by_id(edge_id)
        if acting_id not in (edge.id_user, edge.friend_id):
            raise ForbiddenException("You are not part of this relationship")
        self._soft_delete(edge_id)
        return True

    # ── Derived view ──────────────────────────────────────────────────────────

    def derive_status(self, viewer_id: str, target_id: str) -> RelationshipStatus:
        """
        Both edges Done → mutual. Otherwise the viewer's own edge decides
        before the reverse one, so a Done/Pending mix reads from the viewer's side.
        """
        if viewer_id == target_id:
            return RelationshipStatus.NONE
        outgoing = self._active_edge(viewer_id, target_id)
        incoming = self._active_edge(target_id, viewer_id)

        if outgoing and incoming and outgoing.status_fr == DONE and incoming.status_fr == DONE:
            return RelationshipStatus.MUTUAL
        if outgoing:
            return RelationshipStatus.PENDING_SENT if outgoing.status_fr == PENDING else RelationshipStatus.FOLLOWING
        if incoming:
            return RelationshipStatus.PENDING_RECEIVED if incoming.status_fr == PENDING else RelationshipStatus.FOLLOWER
        return RelationshipStatus.NONE

    # ── Listings ──────────────────────────────────────────────────────────────

    def _page(self, filters: dict, page: int, size: int) -> List[EdgeRecord]:
        if page < 0:
            raise ValidationException("page must be >= 0")
        if size < 1 or size > MAX_PAGE_SIZE:
            raise ValidationException(f"size must be between 1 and {MAX_PAGE_SIZE}")
        rows = self.store.fetch(
            FRIEND, {**filters, "status": EDGE_ACTIVE},
            order_by="id", desc=True, limit=size, offset=page * size,
        )
        return [EdgeRecord.model_validate(r) for r in rows]

    def list_followers(self, account_id: str, page: int = 0, size: int = 20) -> List[EdgeRecord]:
        return self._page({"friend_id": account_id, "status_fr": DONE}, page, size)

    def list_following(self, account_id: str, page: int = 0, size: int = 20) -> List[EdgeRecord]:
        return self._page({"id_user": account_id, "status_fr": DONE}, page, size)

    def list_pending_received(self, account_id: str, page: int = 0, size: int = 20) -> List[EdgeRecord]:
        return self._page({"friend_id": account_id, "status_fr": PENDING}, page, size)
