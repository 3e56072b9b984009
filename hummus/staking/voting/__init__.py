"""
Gauge voting components.
"""

from hummus.staking.voting.gauge_voter import (
    DEFAULT_VOTE_ALLOC_POINTS,
    Gauge,
    GaugeVoter,
    VotingPhase,
)

__all__ = [
    "DEFAULT_VOTE_ALLOC_POINTS",
    "Gauge",
    "GaugeVoter",
    "VotingPhase",
]
