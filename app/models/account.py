import uuid
from sqlalchemy import Boolean, Column, String, Integer, Text, TIMESTAMP, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base

# Account.status values
STATUS_DEACTIVATED = 0
STATUS_ACTIVE = 1
STATUS_PASSWORD_CHANGE_REQUIRED = 2


def _new_id() -> str:
    return str(uuid.uuid4())


class Account(Base):
    """
    Identity record. Never hard-deleted: status 0 hides the row from every
    normal lookup, status 2 means the stored credential is a temporary one.
    """
    __tablename__ = "account"

    # Stored as text so the same column works on PostgREST and SQLite
    id = Column(String(36), primary_key=True, default=_new_id, nullable=False)
    username_login = Column(String(100), unique=True, nullable=False, index=True)
    password_login = Column(String(255), nullable=False)  # bcrypt hash
    username = Column(String(100), nullable=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    gmail = Column(String(255), nullable=True)
    provider = Column(String(30), nullable=True)       # "google" | "email"
    openid_sub = Column(String(255), nullable=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    role_id = Column(String(36), ForeignKey("role.id"), nullable=True, index=True)
    status = Column(Integer, nullable=False, default=STATUS_ACTIVE, index=True)

    # Profile
    image = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    place_of_residence = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=True)

    # ── Relationships ──────────────────────────────────────────────────────────
    role = relationship("Role", back_populates="accounts")
