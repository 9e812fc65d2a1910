"""
Relationship schemas: follow edges and the derived per-pair status.
"""
from enum import Enum
from pydantic import BaseModel, ConfigDict, field_validator
from typing import List


class RelationshipStatus(str, Enum):
    NONE = "none"
    PENDING_SENT = "pending_sent"
    PENDING_RECEIVED = "pending_received"
    FOLLOWING = "following"
    FOLLOWER = "follower"
    MUTUAL = "mutual"


class EdgeRecord(BaseModel):
    """One row of the `friend` table."""
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: int
    id_user: str
    friend_id: str
    status_fr: str
    status: int

    @field_validator("id_user", "friend_id", mode="before")
    @classmethod
    def uuid_to_str(cls, v) -> str:
        return str(v)


class EdgeListResponse(BaseModel):
    items: List[EdgeRecord]
    page: int
    size: int
    count: int  # rows on this page, not a total


class RelationshipStatusResponse(BaseModel):
    user_id: str
    status: RelationshipStatus


class FollowResponse(BaseModel):
    message: str
    edge: EdgeRecord
