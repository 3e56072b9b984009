"""
Per-second emission of the base reward token, split across pools by
allocation weight.

Pools are updated lazily: nothing happens between interactions, and each
interaction first brings the touched pool's accumulators up to ``now``.
Any change to the weights or the emission rate updates every pool first so
past windows are always priced at the rates that were in force.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from hummus.staking.core.accumulator import distribute
from hummus.staking.core.dilution import VoteEscrowDilution, validate_repartition
from hummus.staking.core.errors import (
    AlreadyInitialized,
    DuplicatePool,
    InvalidParameter,
    NotInitialized,
    PoolNotFound,
)
from hummus.staking.core.fixed_point import checked, checked_add, checked_sub, mul_div
from hummus.staking.core.transaction import Transactional

logger = logging.getLogger(__name__)


def token_key(token: Any) -> str:
    """Registry key of a token object or address."""
    return getattr(token, "address", token)


@dataclass
class FarmState:
    """Global configuration and totals of one farm instance."""

    owner: str
    token: Any = None
    escrow: Any = None
    voter: Optional[str] = None
    token_per_sec: int = 0
    start_timestamp: int = 0
    total_alloc_point: int = 0
    initialized: bool = False


@dataclass
class Pool:
    """A staking pool and its reward accumulators."""

    pid: int
    lp_token: Any
    base_alloc_point: int
    last_reward_time: int
    rewarder: Any = None
    vote_alloc_point: int = 0
    acc_reward_per_share: int = 0
    acc_reward_per_factor_share: int = 0
    total_staked: int = 0
    sum_of_factors: int = 0
    total_emitted: int = 0

    @property
    def alloc_point(self) -> int:
        return self.base_alloc_point + self.vote_alloc_point


def advance_pool(
    pool: Pool,
    now: int,
    token_per_sec: int,
    total_alloc_point: int,
    diluting_repartition: int,
) -> Tuple[Pool, int]:
    """
    Bring a pool's accumulators up to now.

    Returns:
        (pool, allotted) with allotted the reward made claimable in the window
    """
    if now <= pool.last_reward_time:
        return pool, 0

    if pool.total_staked == 0:
        return replace(pool, last_reward_time=now), 0

    elapsed = now - pool.last_reward_time
    reward = 0
    if total_alloc_point > 0:
        reward = mul_div(
            checked(elapsed * token_per_sec, "pool emission"),
            pool.alloc_point,
            total_alloc_point,
            "pool reward",
        )

    delta_share, delta_factor, allotted = distribute(
        reward, pool.total_staked, pool.sum_of_factors, diluting_repartition
    )
    return replace(
        pool,
        acc_reward_per_share=checked_add(pool.acc_reward_per_share, delta_share, "acc reward per share"),
        acc_reward_per_factor_share=checked_add(
            pool.acc_reward_per_factor_share, delta_factor, "acc reward per factor share"
        ),
        last_reward_time=now,
        total_emitted=checked_add(pool.total_emitted, allotted, "pool emitted"),
    ), allotted


class RewardAccrual(Transactional):
    """
    Owns the pools, their weights and the global emission rate.

    This class performs no authorization; the farm facade checks callers.
    """

    _transactional_fields = ("state", "pools", "lp_index")

    def __init__(self, owner: str, dilution: VoteEscrowDilution = None):
        self.state = FarmState(owner=owner)
        self.pools: List[Pool] = []
        self.lp_index: Dict[str, int] = {}
        self.dilution = dilution or VoteEscrowDilution()

    @property
    def diluting_repartition(self) -> int:
        return self.dilution.diluting_repartition

    def initialize(
        self,
        token: Any,
        escrow: Any,
        token_per_sec: int,
        diluting_repartition: int,
        start_timestamp: int,
        now: int,
    ):
        """
        One-time setup.

        A start timestamp in the past is clamped to now.
        """
        if self.state.initialized:
            raise AlreadyInitialized("Farm is already initialized")
        validate_repartition(diluting_repartition)
        checked(token_per_sec, "token per sec")

        self.dilution.escrow = escrow
        self.dilution.update_repartition(diluting_repartition)
        self.state = replace(
            self.state,
            token=token,
            escrow=escrow,
            token_per_sec=token_per_sec,
            start_timestamp=max(start_timestamp, now, 0),
            initialized=True,
        )
        logger.info(
            f"Farm initialized: token_per_sec={token_per_sec}, "
            f"diluting_repartition={diluting_repartition}, start={self.state.start_timestamp}"
        )

    def require_initialized(self):
        if not self.state.initialized:
            raise NotInitialized("Farm has not been initialized")

    def pool_length(self) -> int:
        return len(self.pools)

    def get_pool(self, pid: int) -> Pool:
        if not isinstance(pid, int) or pid < 0 or pid >= len(self.pools):
            raise PoolNotFound(f"No pool with id {pid}")
        return self.pools[pid]

    def pid_of(self, lp_token: Any) -> int:
        key = token_key(lp_token)
        if key not in self.lp_index:
            raise PoolNotFound(f"No pool for token {key}")
        return self.lp_index[key]

    def add(self, alloc_point: int, lp_token: Any, rewarder: Any, now: int) -> int:
        """Register a new pool and return its id."""
        self.require_initialized()
        key = token_key(lp_token)
        if key in self.lp_index:
            raise DuplicatePool(f"Token {key} already has pool {self.lp_index[key]}")
        checked(alloc_point, "alloc point")

        self.mass_update_pools(now)
        pid = len(self.pools)
        self.pools.append(
            Pool(
                pid=pid,
                lp_token=lp_token,
                base_alloc_point=alloc_point,
                last_reward_time=max(now, self.state.start_timestamp),
                rewarder=rewarder,
            )
        )
        self.lp_index[key] = pid
        self.state.total_alloc_point = checked_add(
            self.state.total_alloc_point, alloc_point, "total alloc point"
        )
        logger.info(f"Added pool {pid} for {key} with {alloc_point} alloc points")
        return pid

    def set(self, pid: int, alloc_point: int, rewarder: Any, overwrite: bool, now: int):
        """
        Change a pool's base weight.

        The attached rewarder is only replaced when overwrite is True, even if
        a different rewarder is supplied.
        """
        self.require_initialized()
        if not isinstance(overwrite, bool):
            raise InvalidParameter("overwrite must be given explicitly as a bool")
        pool = self.get_pool(pid)
        checked(alloc_point, "alloc point")

        self.mass_update_pools(now)
        pool = self.pools[pid]
        total = checked_sub(self.state.total_alloc_point, pool.base_alloc_point, "total alloc point")
        self.state.total_alloc_point = checked_add(total, alloc_point, "total alloc point")

        new_rewarder = rewarder if overwrite else pool.rewarder
        self.pools[pid] = replace(pool, base_alloc_point=alloc_point, rewarder=new_rewarder)
        logger.info(
            f"Set pool {pid}: base alloc {pool.base_alloc_point} -> {alloc_point}, "
            f"rewarder {'replaced' if overwrite else 'kept'}"
        )

    def set_vote_points(self, pid: int, points: int, now: int) -> bool:
        """
        Set the vote-driven part of a pool's weight.

        Returns:
            True if the weight changed
        """
        self.require_initialized()
        pool = self.get_pool(pid)
        checked(points, "vote alloc point")
        if pool.vote_alloc_point == points:
            return False

        self.mass_update_pools(now)
        pool = self.pools[pid]
        total = checked_sub(self.state.total_alloc_point, pool.vote_alloc_point, "total alloc point")
        self.state.total_alloc_point = checked_add(total, points, "total alloc point")
        self.pools[pid] = replace(pool, vote_alloc_point=points)
        logger.debug(f"Pool {pid} vote alloc {pool.vote_alloc_point} -> {points}")
        return True

    def update_emission_rate(self, token_per_sec: int, now: int):
        self.require_initialized()
        checked(token_per_sec, "token per sec")
        self.mass_update_pools(now)
        old_rate = self.state.token_per_sec
        self.state.token_per_sec = token_per_sec
        logger.info(f"Emission rate {old_rate} -> {token_per_sec} per second")

    def update_emission_repartition(self, diluting_repartition: int, now: int):
        self.require_initialized()
        validate_repartition(diluting_repartition)
        self.mass_update_pools(now)
        self.dilution.update_repartition(diluting_repartition)

    def update_pool(self, pid: int, now: int) -> Pool:
        pool = self.get_pool(pid)
        pool, allotted = advance_pool(
            pool,
            now,
            self.state.token_per_sec,
            self.state.total_alloc_point,
            self.diluting_repartition,
        )
        self.pools[pid] = pool
        if allotted:
            logger.debug(f"Pool {pid} accrued {allotted} up to {now}")
        return pool

    def mass_update_pools(self, now: int):
        for pid in range(len(self.pools)):
            self.update_pool(pid, now)

    def replace_pool(self, pool: Pool):
        self.pools[pool.pid] = pool
