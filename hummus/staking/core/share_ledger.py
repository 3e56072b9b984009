"""
Per-pool bookkeeping of staked amounts and reward debt.

Every mutation settles the position first: pending reward is computed from
the accumulators at ``now`` against the old amount and factor, credited to
the claimable balance, and only then is the stake changed and the reward
debt re-baselined. Reward debt and claimable balances are kept at
ACC_SCALE precision; only whole units ever leave the ledger, so rounding
cannot pay out more than was emitted.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Tuple

from hummus.staking.core.accumulator import accrued
from hummus.staking.core.errors import InsufficientBalance, InvalidParameter
from hummus.staking.core.fixed_point import ACC_SCALE, checked, checked_add, checked_sub
from hummus.staking.core.reward_accrual import Pool, RewardAccrual
from hummus.staking.core.transaction import Transactional

logger = logging.getLogger(__name__)


@dataclass
class UserPosition:
    """One account's stake in one pool."""

    pid: int
    account: str
    amount: int = 0
    reward_debt: int = 0
    factor: int = 0
    claimable: int = 0
    claimed: int = 0

    @property
    def claimable_units(self) -> int:
        return self.claimable // ACC_SCALE


def settle(position: UserPosition, pool: Pool) -> Tuple[UserPosition, int]:
    """
    Credit everything accrued since the last settlement.

    Returns:
        (position, pending) with pending scaled by ACC_SCALE
    """
    entitled = accrued(
        position.amount,
        position.factor,
        pool.acc_reward_per_share,
        pool.acc_reward_per_factor_share,
    )
    pending = checked_sub(entitled, position.reward_debt, "pending reward")
    return replace(
        position,
        reward_debt=entitled,
        claimable=checked_add(position.claimable, pending, "claimable reward"),
    ), pending


def pending_reward(position: UserPosition, pool: Pool) -> int:
    """Whole units an account could harvest at the pool's current accumulators."""
    _, pending = settle(position, pool)
    return (position.claimable + pending) // ACC_SCALE


class ShareLedger(Transactional):
    """Stakes, factors and reward debt of every account in every pool."""

    _transactional_fields = ("positions",)

    def __init__(self, accrual: RewardAccrual):
        self.accrual = accrual
        self.positions: Dict[int, Dict[str, UserPosition]] = {}

    def position(self, pid: int, account: str) -> UserPosition:
        self.accrual.get_pool(pid)
        return self.positions.get(pid, {}).get(account) or UserPosition(pid=pid, account=account)

    def positions_of(self, account: str) -> List[UserPosition]:
        return [
            by_account[account]
            for pid, by_account in sorted(self.positions.items())
            if account in by_account
        ]

    def _store(self, position: UserPosition):
        self.positions.setdefault(position.pid, {})[position.account] = position

    def settle(self, pid: int, account: str, now: int) -> UserPosition:
        pool = self.accrual.update_pool(pid, now)
        position, pending = settle(self.position(pid, account), pool)
        self._store(position)
        if pending:
            logger.debug(f"Settled {pending // ACC_SCALE} for {account} in pool {pid}")
        return position

    def _rebase(self, position: UserPosition, amount: int, factor: int, pool: Pool) -> UserPosition:
        """Apply a new amount and factor to a settled position and its pool."""
        pool = replace(
            pool,
            total_staked=checked(pool.total_staked - position.amount + amount, "total staked"),
            sum_of_factors=checked(pool.sum_of_factors - position.factor + factor, "sum of factors"),
        )
        self.accrual.replace_pool(pool)
        position = replace(
            position,
            amount=amount,
            factor=factor,
            reward_debt=accrued(amount, factor, pool.acc_reward_per_share, pool.acc_reward_per_factor_share),
        )
        self._store(position)
        return position

    def _factor(self, account: str, amount: int, now: int) -> int:
        return self.accrual.dilution.factor_for(account, amount, now)

    def deposit(self, pid: int, account: str, amount: int, now: int) -> UserPosition:
        if amount < 0:
            raise InvalidParameter(f"Cannot deposit a negative amount: {amount}")
        position = self.settle(pid, account, now)
        new_amount = checked_add(position.amount, amount, "staked amount")
        return self._rebase(position, new_amount, self._factor(account, new_amount, now), self.accrual.pools[pid])

    def withdraw(self, pid: int, account: str, amount: int, now: int) -> UserPosition:
        if amount < 0:
            raise InvalidParameter(f"Cannot withdraw a negative amount: {amount}")
        current = self.position(pid, account)
        if amount > current.amount:
            raise InsufficientBalance(
                f"{account} has {current.amount} staked in pool {pid}, cannot withdraw {amount}"
            )
        position = self.settle(pid, account, now)
        new_amount = position.amount - amount
        return self._rebase(position, new_amount, self._factor(account, new_amount, now), self.accrual.pools[pid])

    def refresh(self, pid: int, account: str, now: int) -> UserPosition:
        """Settle under the old factor and re-base on the escrow balance at now."""
        position = self.settle(pid, account, now)
        new_factor = self._factor(account, position.amount, now)
        if new_factor != position.factor:
            logger.debug(f"Factor of {account} in pool {pid}: {position.factor} -> {new_factor}")
        return self._rebase(position, position.amount, new_factor, self.accrual.pools[pid])

    def sync_factor(self, pid: int, account: str, now: int) -> Tuple[int, int]:
        """
        Re-settle under the old factor, then apply the current escrow balance.

        Returns:
            (old_factor, new_factor)
        """
        old_factor = self.position(pid, account).factor
        return old_factor, self.refresh(pid, account, now).factor

    def harvest(self, pid: int, account: str, limit: int = None) -> int:
        """
        Take whole units out of the claimable balance.

        Args:
            limit: Maximum units to take; the rest stays claimable

        Returns:
            Units taken
        """
        position = self.position(pid, account)
        units = position.claimable_units
        if limit is not None and units > limit:
            logger.warning(
                f"Reward balance short for {account} in pool {pid}: owed {units}, paying {limit}"
            )
            units = limit
        if units == 0:
            return 0
        self._store(
            replace(
                position,
                claimable=position.claimable - units * ACC_SCALE,
                claimed=checked_add(position.claimed, units, "claimed reward"),
            )
        )
        return units

    def emergency_withdraw(self, pid: int, account: str, now: int) -> int:
        """
        Remove the whole stake and forfeit every unpaid reward.

        Returns:
            The amount that was staked
        """
        self.accrual.update_pool(pid, now)
        position = self.position(pid, account)
        amount = position.amount
        position = self._rebase(position, 0, 0, self.accrual.pools[pid])
        self._store(replace(position, claimable=0))
        return amount
