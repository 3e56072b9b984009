"""
Side reward streams: rewarders and bribes.
"""

from hummus.staking.rewarders.base import RewardStream, StreamShare
from hummus.staking.rewarders.bribe import Bribe
from hummus.staking.rewarders.rewarder import EscrowRewarder, Rewarder, VeRewarder

__all__ = [
    "RewardStream",
    "StreamShare",
    "Bribe",
    "EscrowRewarder",
    "Rewarder",
    "VeRewarder",
]
