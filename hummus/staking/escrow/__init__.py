"""
Voting escrow components.
"""

from hummus.staking.escrow.vote_escrow import (
    MAX_LOCK_DURATION,
    MIN_LOCK_DURATION,
    WEEK,
    EscrowLock,
    VoteEscrow,
)
from hummus.staking.escrow.whitelist import Whitelist

__all__ = [
    "MAX_LOCK_DURATION",
    "MIN_LOCK_DURATION",
    "WEEK",
    "EscrowLock",
    "VoteEscrow",
    "Whitelist",
]
