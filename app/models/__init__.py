# Importing this package registers every table on Base.metadata, which both
# SqlRecordStore and alembic/env.py read. Referenced tables come first.

from app.models.role import Role
from app.models.account import Account
from app.models.friend import Friend

__all__ = [
    "Role",
    "Account",
    "Friend",
]
