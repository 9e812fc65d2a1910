from sqlalchemy import Column, String, Integer, ForeignKey, Index, text
from app.database import Base

# Friend.status_fr values
PENDING = "Pending"
DONE = "Done"


class Friend(Base):
    """
    Directed follow edge: id_user follows (or asked to follow) friend_id.

    Rows are soft-deleted with status=0 and never reused; a new request after
    an unfollow inserts a fresh row.
    """
    __tablename__ = "friend"

    id = Column(Integer, primary_key=True, autoincrement=True)
    id_user = Column(String(36), ForeignKey("account.id"), nullable=False, index=True)
    friend_id = Column(String(36), ForeignKey("account.id"), nullable=False, index=True)
    status_fr = Column(String(10), nullable=False, default=PENDING)
    status = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        # At most one active edge per ordered pair, enforced by the database
        Index(
            "uq_friend_active_pair",
            "id_user",
            "friend_id",
            unique=True,
            postgresql_where=text("status = 1"),
            sqlite_where=text("status = 1"),
        ),
    )
