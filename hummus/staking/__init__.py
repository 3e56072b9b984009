"""
Staking system for Hummus.

This module implements liquidity mining with vote-escrow boosts: a farm that
streams a reward token to stakers of registered pools, a voting escrow whose
balance boosts farm rewards, gauge voting that steers pool weights, and side
reward streams (rewarders and bribes).
"""

# Main components
from hummus.staking.escrow.vote_escrow import VoteEscrow
from hummus.staking.escrow.whitelist import Whitelist
from hummus.staking.events import EventBus, LockChanged
from hummus.staking.farm import MasterFarm, PendingTokens
from hummus.staking.rewarders.bribe import Bribe
from hummus.staking.rewarders.rewarder import EscrowRewarder, Rewarder, VeRewarder
from hummus.staking.system import FarmSystem
from hummus.staking.tokens import NativeAsset, Token
from hummus.staking.voting.gauge_voter import GaugeVoter

__all__ = [
    # Main components
    "MasterFarm",
    "PendingTokens",
    "VoteEscrow",
    "Whitelist",
    "GaugeVoter",
    "FarmSystem",
    # Reward streams
    "Rewarder",
    "VeRewarder",
    "EscrowRewarder",
    "Bribe",
    # Tokens and events
    "Token",
    "NativeAsset",
    "EventBus",
    "LockChanged",
]
