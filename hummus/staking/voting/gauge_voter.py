"""
Gauge voting: escrow holders direct the vote-driven part of the farm's
allocation points.

Each epoch moves through OPEN -> LOCKED -> OPEN. While OPEN, accounts set
how much of their escrow balance goes to each gauge; allocations persist
across epochs until changed. When an epoch ends the gauge totals are reset
and recounted from the persisting allocations (allocations that now exceed
a voter's decayed balance are scaled down), the vote points are pushed to
the farms, and the next epoch opens.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict

from hummus.staking.core.errors import (
    DuplicateGauge,
    EpochLocked,
    GaugeNotFound,
    InsufficientVotingPower,
    InvalidParameter,
    Unauthorized,
)
from hummus.staking.core.fixed_point import checked, mul_div
from hummus.staking.core.reward_accrual import token_key
from hummus.staking.core.transaction import Transactional, atomic
from hummus.staking.escrow.vote_escrow import WEEK

logger = logging.getLogger(__name__)

DEFAULT_VOTE_ALLOC_POINTS = 1000


class VotingPhase(Enum):
    OPEN = "open"
    LOCKED = "locked"


@dataclass
class Gauge:
    """A voting target: one farm pool and its optional bribe."""

    lp_token: Any
    farm: Any
    bribe: Any = None
    votes: int = 0
    vote_alloc_point: int = 0

    @property
    def key(self) -> str:
        return token_key(self.lp_token)


class GaugeVoter(Transactional):
    """
    Tallies votes per gauge and turns them into farm allocation points.

    Args:
        escrow: Voting escrow providing balance_of(account, now)
        owner: Account allowed to manage gauges
        address: Identity the farms know this voter by
        vote_alloc_points: Allocation points shared out by votes
        epoch_length: Seconds per voting epoch
        start_timestamp: End of the first epoch is start + epoch_length
    """

    _transactional_fields = (
        "gauges",
        "allocations",
        "total_votes",
        "vote_alloc_points",
        "epoch",
        "epoch_end",
        "phase",
        "dirty",
    )

    def __init__(
        self,
        escrow,
        owner: str,
        address: str = "voter",
        vote_alloc_points: int = DEFAULT_VOTE_ALLOC_POINTS,
        epoch_length: int = WEEK,
        start_timestamp: int = 0,
    ):
        if epoch_length <= 0:
            raise InvalidParameter("epoch length must be positive")
        self.escrow = escrow
        self.owner = owner
        self.address = address
        self.epoch_length = epoch_length
        self.vote_alloc_points = checked(vote_alloc_points, "vote alloc points")
        self.gauges: Dict[str, Gauge] = {}
        self.allocations: Dict[str, Dict[str, int]] = {}
        self.total_votes = 0
        self.epoch = 0
        self.epoch_end = start_timestamp + epoch_length
        self.phase = VotingPhase.OPEN
        self.dirty = False

    def _participants(self):
        return (self,)

    def _require_owner(self, caller: str):
        if caller != self.owner:
            raise Unauthorized(f"{caller} is not the voter owner")

    # ------------------------------------------------------------------
    # Gauges
    # ------------------------------------------------------------------

    def add_gauge(self, gauge, lp_token, bribe=None, caller: str = None) -> Gauge:
        """
        Register the farm pool for lp_token as a voting target.

        Args:
            gauge: The farm that receives the vote points
            lp_token: Staked token identifying the pool
            bribe: Optional Bribe paid to this gauge's voters
        """
        self._require_owner(caller)
        key = token_key(lp_token)
        if key in self.gauges:
            raise DuplicateGauge(f"Gauge for {key} already exists")
        gauge.pid_of(lp_token)

        with atomic(*self._participants()):
            record = Gauge(lp_token=lp_token, farm=gauge, bribe=bribe)
            self.gauges[key] = record
        logger.info(f"Added gauge for {key}{' with bribe' if bribe is not None else ''}")
        return record

    def set_bribe(self, lp_token, bribe, caller: str):
        self._require_owner(caller)
        gauge = self.get_gauge(lp_token)
        with atomic(*self._participants()):
            self.gauges[gauge.key] = replace(gauge, bribe=bribe)
        logger.info(f"Bribe of gauge {gauge.key} set to {bribe!r}")

    def set_vote_alloc_points(self, points: int, caller: str):
        self._require_owner(caller)
        with atomic(*self._participants()):
            self.vote_alloc_points = checked(points, "vote alloc points")
            self.dirty = True

    def get_gauge(self, lp_token) -> Gauge:
        key = token_key(lp_token)
        if key not in self.gauges:
            raise GaugeNotFound(f"No gauge for {key}")
        return self.gauges[key]

    # ------------------------------------------------------------------
    # Voting
    # ------------------------------------------------------------------

    def voting_power(self, account: str, now: int) -> int:
        return self.escrow.balance_of(account, now)

    def used_weight(self, account: str) -> int:
        return sum(self.allocations.get(account, {}).values())

    def allocation(self, account: str, lp_token) -> int:
        return self.allocations.get(account, {}).get(token_key(lp_token), 0)

    def vote(self, account: str, lp_token, weight: int, now: int):
        """Set the weight account puts on one gauge."""
        self.reallocate(account, {lp_token: weight}, now)

    def reallocate(self, account: str, allocations: Dict[Any, int], now: int):
        """
        Set several gauge weights at once.

        All changed weights are removed before any is added, so moving weight
        between gauges never counts it twice.
        """
        with atomic(*self._participants()):
            self._roll_epoch_if_due(now)
            if self.phase is VotingPhase.LOCKED:
                raise EpochLocked(f"Epoch {self.epoch} is being counted")

            current = dict(self.allocations.get(account, {}))
            updated = dict(current)
            for lp_token, weight in allocations.items():
                if weight < 0:
                    raise InvalidParameter(f"Vote weight must be non-negative, got {weight}")
                key = self.get_gauge(lp_token).key
                if weight:
                    updated[key] = weight
                else:
                    updated.pop(key, None)

            power = self.voting_power(account, now)
            total = sum(updated.values())
            if total > power:
                raise InsufficientVotingPower(
                    f"{account} would allocate {total} but has {power} voting power"
                )

            changed = sorted(key for key in set(current) | set(updated) if current.get(key, 0) != updated.get(key, 0))
            for key in changed:
                self._move_votes(key, -current.get(key, 0))
            for key in changed:
                self._move_votes(key, updated.get(key, 0))

            if updated:
                self.allocations[account] = updated
            else:
                self.allocations.pop(account, None)
            for key in changed:
                self._notify_bribe(key, account, updated.get(key, 0), now)
            if changed:
                self.dirty = True
        logger.debug(f"{account} votes: {updated}")

    def _move_votes(self, key: str, delta: int):
        gauge = self.gauges[key]
        self.gauges[key] = replace(gauge, votes=checked(gauge.votes + delta, "gauge votes"))
        self.total_votes = checked(self.total_votes + delta, "total votes")

    def _notify_bribe(self, key: str, account: str, votes: int, now: int):
        bribe = self.gauges[key].bribe
        if bribe is not None:
            bribe.on_vote(account, votes, now, self.address)

    # ------------------------------------------------------------------
    # Epochs and distribution
    # ------------------------------------------------------------------

    def vote_points(self) -> Dict[str, int]:
        """Vote allocation points each gauge is due at the current tallies."""
        if self.total_votes == 0:
            return {key: 0 for key in self.gauges}
        return {
            key: mul_div(self.vote_alloc_points, gauge.votes, self.total_votes, "gauge vote points")
            for key, gauge in self.gauges.items()
        }

    def lock_epoch(self, caller: str, now: int):
        """Stop voting and recount the tallies; distribute() opens the next epoch."""
        self._require_owner(caller)
        with atomic(*self._participants()):
            if self.phase is VotingPhase.LOCKED:
                return
            self.phase = VotingPhase.LOCKED
            self._recount(now)
        logger.info(f"Epoch {self.epoch} locked with {self.total_votes} votes")

    def distribute(self, now: int) -> Dict[str, int]:
        """
        Push vote points to the farms.

        Repeated calls within an epoch without vote changes do nothing.

        Returns:
            Vote points per gauge
        """
        with atomic(*self._participants()):
            if self._roll_epoch_if_due(now):
                return self.vote_points()
            if self.phase is VotingPhase.LOCKED:
                self._push(now)
                self._open_next_epoch(now)
                return self.vote_points()
            if self.dirty:
                self._push(now)
            return self.vote_points()

    def _roll_epoch_if_due(self, now: int) -> bool:
        if now < self.epoch_end:
            return False
        if self.phase is VotingPhase.OPEN:
            self.phase = VotingPhase.LOCKED
            self._recount(now)
        self._push(now)
        self._open_next_epoch(now)
        return True

    def _open_next_epoch(self, now: int):
        passed = 1
        if now >= self.epoch_end:
            passed = (now - self.epoch_end) // self.epoch_length + 1
        self.epoch += passed
        self.epoch_end += passed * self.epoch_length
        self.phase = VotingPhase.OPEN
        logger.info(f"Epoch {self.epoch} open until {self.epoch_end}")

    def _recount(self, now: int):
        """Reset the gauge totals and rebuild them from current allocations."""
        for key, gauge in self.gauges.items():
            self.gauges[key] = replace(gauge, votes=0)
        self.total_votes = 0

        for account in sorted(self.allocations):
            allocations = self.allocations[account]
            power = self.voting_power(account, now)
            total = sum(allocations.values())
            if total > power:
                scaled = {key: weight * power // total for key, weight in allocations.items()}
                for key, weight in scaled.items():
                    if weight != allocations[key]:
                        self._notify_bribe(key, account, weight, now)
                allocations = {key: weight for key, weight in scaled.items() if weight}
                logger.debug(f"Scaled votes of {account} from {total} to {sum(allocations.values())}")
                if allocations:
                    self.allocations[account] = allocations
                else:
                    del self.allocations[account]
            for key, weight in allocations.items():
                self._move_votes(key, weight)
        self.dirty = True

    def _push(self, now: int):
        points = self.vote_points()
        for key, gauge in self.gauges.items():
            if gauge.vote_alloc_point == points[key]:
                continue
            gauge.farm.set_vote_points(gauge.farm.pid_of(gauge.lp_token), points[key], self.address, now)
            self.gauges[key] = replace(gauge, vote_alloc_point=points[key])
        self.dirty = False
