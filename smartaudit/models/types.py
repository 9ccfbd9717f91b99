# smartaudit/models/types.py
import uuid
from datetime import datetime, timezone

from sqlalchemy.types import TypeDecorator
from sqlalchemy import JSON


class JSONBCompat(TypeDecorator):
    """
    JSONB on PostgreSQL, plain JSON on SQLite and the rest.

    Lets the same models run against ``sqlite://`` in tests and
    ``postgresql://`` in production.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import JSONB
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    # naive UTC, like every DateTime column in this schema
    return datetime.now(timezone.utc).replace(tzinfo=None)
