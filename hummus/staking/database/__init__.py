"""
Persistence of staking ledger snapshots and the operation journal.
"""

from hummus.staking.database.models import (
    Base,
    EscrowLockRecord,
    FarmStateRecord,
    GaugeRecord,
    LedgerEvent,
    PoolRecord,
    PositionRecord,
    UintType,
    VoteAllocationRecord,
    VoterStateRecord,
)
from hummus.staking.database.store import LedgerStore

__all__ = [
    "Base",
    "EscrowLockRecord",
    "FarmStateRecord",
    "GaugeRecord",
    "LedgerEvent",
    "PoolRecord",
    "PositionRecord",
    "UintType",
    "VoteAllocationRecord",
    "VoterStateRecord",
    "LedgerStore",
]
