from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from supabase import Client, create_client

from app.config import settings


# ── Declarative Base ──────────────────────────────────────────────────────────
# Every table the record store touches is declared on this metadata, which is
# also what Alembic compares against.
class Base(DeclarativeBase):
    pass


def build_engine(url: str) -> Engine:
    """
    SQLite (local dev, tests) gets a single shared connection so an in-memory
    database survives across checkouts; Postgres gets a real pool.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


class SupabaseClient:
    _client: Client = None

    @classmethod
    def get_client(cls) -> Client:
        # service_role bypasses RLS; the backend owns every row it touches
        if cls._client is None:
            key = settings.supabase_service_role_key or settings.supabase_key
            cls._client = create_client(settings.supabase_url, key)
        return cls._client

    @classmethod
    def reset_client(cls):
        cls._client = None


def get_supabase() -> Client:
    return SupabaseClient.get_client()
