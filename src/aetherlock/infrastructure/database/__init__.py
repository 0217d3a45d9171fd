"""Database infrastructure — engine, ORM models, and SQL stores."""

from aetherlock.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    close_db,
    init_db,
)
from aetherlock.infrastructure.database.orm_models import (
    Base,
    DisputeRecord,
    EscrowEventRecord,
    EscrowRecord,
    MessageRecord,
    SettlementRow,
)
from aetherlock.infrastructure.database.repositories import (
    SqlEscrowStore,
    SqlMessageStore,
)

__all__ = [
    "Base",
    "DisputeRecord",
    "EscrowEventRecord",
    "EscrowRecord",
    "MessageRecord",
    "SettlementRow",
    "SqlEscrowStore",
    "SqlMessageStore",
    "build_engine",
    "build_session_factory",
    "close_db",
    "init_db",
]
