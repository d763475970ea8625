"""ORM Models — SQLAlchemy declarative models for ledger and local store.

Invariants:
    - Ledger models inherit from LedgerBase, the local queue from LocalBase
    - No model is mutated by read/display code

Design Decisions:
    - One file per table for locality
    - All models imported here so metadata is complete before create_all runs
"""

from ledger_sync.models.account import Account  # noqa: F401
from ledger_sync.models.transaction import TransactionRecord  # noqa: F401
from ledger_sync.models.local_transaction import LocalTransaction  # noqa: F401
