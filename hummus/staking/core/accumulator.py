"""
Accumulated-reward-per-share bookkeeping shared by the farm pools and
every side reward stream.

The functions here are pure: they take the current state and return the
new state plus whatever was emitted or owed, leaving storage to callers.
"""

import logging
from dataclasses import dataclass, replace
from typing import Tuple

from hummus.staking.core.fixed_point import (
    ACC_SCALE,
    REPARTITION_PRECISION,
    checked,
    checked_add,
    mul_div,
)

logger = logging.getLogger(__name__)


@dataclass
class RewardAccumulator:
    """Emission state of one independent reward stream."""

    token_per_sec: int
    is_native: bool = False
    acc_token_per_share: int = 0
    acc_token_per_factor_share: int = 0
    last_reward_time: int = 0
    total_emitted: int = 0


def split_reward(reward: int, diluting_repartition: int) -> Tuple[int, int]:
    """
    Split a reward into its diluting and boosted parts.

    Args:
        reward: Reward for the window
        diluting_repartition: Diluting share in parts per 1000

    Returns:
        (diluting, boosted); the two always add up to reward
    """
    diluting = mul_div(reward, diluting_repartition, REPARTITION_PRECISION, "diluting reward")
    return diluting, reward - diluting


def distribute(
    reward: int,
    total_shares: int,
    total_factors: int,
    diluting_repartition: int = REPARTITION_PRECISION,
) -> Tuple[int, int, int]:
    """
    Turn a window's reward into accumulator increments.

    A part whose basis is empty is not assigned to anyone.

    Returns:
        (delta_per_share, delta_per_factor_share, allotted) where allotted is
        the reward actually made claimable, at most reward
    """
    diluting, boosted = split_reward(reward, diluting_repartition)

    delta_share = 0
    delta_factor = 0
    allotted = 0
    if total_shares > 0 and diluting > 0:
        delta_share = mul_div(diluting, ACC_SCALE, total_shares, "acc per share increment")
        allotted += diluting
    if total_factors > 0 and boosted > 0:
        delta_factor = mul_div(boosted, ACC_SCALE, total_factors, "acc per factor increment")
        allotted += boosted
    return delta_share, delta_factor, allotted


def advance(
    accumulator: RewardAccumulator,
    now: int,
    total_shares: int,
    total_factors: int = 0,
    diluting_repartition: int = REPARTITION_PRECISION,
) -> Tuple[RewardAccumulator, int]:
    """
    Bring a stream's accumulators up to now.

    Time still advances while nobody holds shares so empty windows are never
    credited retroactively.

    Returns:
        (accumulator, emitted) with emitted the reward allotted in this window
    """
    if now <= accumulator.last_reward_time:
        return accumulator, 0

    if total_shares == 0 and total_factors == 0:
        return replace(accumulator, last_reward_time=now), 0

    elapsed = now - accumulator.last_reward_time
    reward = checked(elapsed * accumulator.token_per_sec, "stream reward")
    delta_share, delta_factor, allotted = distribute(
        reward, total_shares, total_factors, diluting_repartition
    )

    return replace(
        accumulator,
        acc_token_per_share=checked_add(accumulator.acc_token_per_share, delta_share, "acc per share"),
        acc_token_per_factor_share=checked_add(
            accumulator.acc_token_per_factor_share, delta_factor, "acc per factor share"
        ),
        last_reward_time=now,
        total_emitted=checked_add(accumulator.total_emitted, allotted, "total emitted"),
    ), allotted


def accrued(amount: int, factor: int, acc_per_share: int, acc_per_factor_share: int) -> int:
    """Reward entitlement of a share at the given accumulators, scaled by ACC_SCALE."""
    return checked(amount * acc_per_share + factor * acc_per_factor_share, "accrued reward")
