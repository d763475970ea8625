"""SQLAlchemy Declarative Bases — one per database the package talks to.

Invariants:
    - Server models inherit from LedgerBase, client models from LocalBase
    - Each base is the single source of truth for its own table metadata

Design Decisions:
    - Two bases instead of one: the client never creates ledger tables and the
      server never creates the local queue (ADR: separate systems of record)
"""

from sqlalchemy.orm import DeclarativeBase


class LedgerBase(DeclarativeBase):
    """Base class for server-owned ledger tables."""
    pass


class LocalBase(DeclarativeBase):
    """Base class for the client's durable local store."""
    pass
