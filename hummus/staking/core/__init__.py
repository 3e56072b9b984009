"""
Core accounting components of the staking system.
"""

from hummus.staking.core.accumulator import RewardAccumulator, advance, distribute, split_reward
from hummus.staking.core.dilution import VoteEscrowDilution
from hummus.staking.core.reward_accrual import FarmState, Pool, RewardAccrual
from hummus.staking.core.share_ledger import ShareLedger, UserPosition
from hummus.staking.core.transaction import Transactional, atomic, transactional

__all__ = [
    "RewardAccumulator",
    "advance",
    "distribute",
    "split_reward",
    "VoteEscrowDilution",
    "FarmState",
    "Pool",
    "RewardAccrual",
    "ShareLedger",
    "UserPosition",
    "Transactional",
    "atomic",
    "transactional",
]
