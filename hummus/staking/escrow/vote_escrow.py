"""
Voting escrow: tokens locked until a chosen time in exchange for voting
power.

Two variants are supported. A decaying escrow gives
``amount * remaining / max_lock_duration``, falling linearly to zero at the
unlock time. A non-decaying escrow fixes the balance at lock time from the
full lock duration and keeps it until the lock expires.

Every lock change is published as ``LockChanged`` on ``self.events`` while
the change is still inside its transaction, so a failing subscriber
reverts the lock change as well.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional

from hummus.staking.core.errors import InvalidParameter, LockError, Unauthorized
from hummus.staking.core.fixed_point import checked, checked_add
from hummus.staking.core.transaction import Transactional, atomic
from hummus.staking.events import EventBus, LockChanged

logger = logging.getLogger(__name__)

WEEK = 7 * 86400
MAX_LOCK_DURATION = 4 * 365 * 86400
MIN_LOCK_DURATION = WEEK


@dataclass
class EscrowLock:
    """Tokens locked by one account."""

    account: str
    amount: int
    start: int
    unlock_time: int

    @property
    def duration(self) -> int:
        return self.unlock_time - self.start


class VoteEscrow(Transactional):
    """Locks tokens and reports voting-escrow balances."""

    _transactional_fields = ("locks",)

    def __init__(
        self,
        token,
        address: str = "escrow",
        decaying: bool = True,
        max_lock_duration: int = MAX_LOCK_DURATION,
        min_lock_duration: int = MIN_LOCK_DURATION,
        whitelist=None,
    ):
        if not 0 < min_lock_duration <= max_lock_duration:
            raise InvalidParameter("lock duration bounds must satisfy 0 < min <= max")
        self.token = token
        self.address = address
        self.decaying = decaying
        self.max_lock_duration = max_lock_duration
        self.min_lock_duration = min_lock_duration
        self.whitelist = whitelist
        self.locks: Dict[str, EscrowLock] = {}
        self.events = EventBus()

    def _participants(self):
        return (self, self.token)

    def get_lock(self, account: str) -> Optional[EscrowLock]:
        return self.locks.get(account)

    def balance_of(self, account: str, now: int) -> int:
        lock = self.locks.get(account)
        if lock is None or now >= lock.unlock_time:
            return 0
        if self.decaying:
            remaining = lock.unlock_time - max(now, lock.start)
            return lock.amount * remaining // self.max_lock_duration
        return lock.amount * lock.duration // self.max_lock_duration

    def total_supply(self, now: int) -> int:
        return sum(self.balance_of(account, now) for account in self.locks)

    def total_locked(self) -> int:
        return sum(lock.amount for lock in self.locks.values())

    def _require_allowed(self, account: str):
        if self.whitelist is not None and not self.whitelist.check(account):
            raise Unauthorized(f"{account} is a contract and not whitelisted")

    def _check_unlock_time(self, unlock_time: int, start: int, now: int):
        if unlock_time <= now:
            raise LockError(f"Unlock time {unlock_time} is not in the future")
        duration = unlock_time - start
        if duration < self.min_lock_duration or unlock_time - now > self.max_lock_duration:
            raise LockError(
                f"Lock must last between {self.min_lock_duration} and {self.max_lock_duration} seconds"
            )

    def _active_lock(self, account: str, now: int) -> EscrowLock:
        lock = self.locks.get(account)
        if lock is None:
            raise LockError(f"{account} has no lock")
        if now >= lock.unlock_time:
            raise LockError(f"Lock of {account} expired at {lock.unlock_time}")
        return lock

    def _publish(self, account: str, old_balance: int, now: int):
        event = LockChanged(
            account=account,
            old_balance=old_balance,
            new_balance=self.balance_of(account, now),
            timestamp=now,
        )
        logger.debug(f"Lock changed for {account}: {event.old_balance} -> {event.new_balance}")
        self.events.publish(event)

    def create_lock(self, account: str, amount: int, unlock_time: int, now: int) -> EscrowLock:
        self._require_allowed(account)
        if amount <= 0:
            raise LockError("Lock amount must be positive")
        existing = self.locks.get(account)
        if existing is not None:
            raise LockError(f"{account} already has a lock until {existing.unlock_time}; withdraw it first")
        self._check_unlock_time(unlock_time, now, now)

        with atomic(*self._participants()):
            self.token.transfer(account, self.address, amount)
            lock = EscrowLock(account=account, amount=checked(amount, "lock amount"), start=now, unlock_time=unlock_time)
            self.locks[account] = lock
            self._publish(account, 0, now)
        logger.info(f"{account} locked {amount} until {unlock_time}")
        return lock

    def increase_amount(self, account: str, amount: int, now: int) -> EscrowLock:
        self._require_allowed(account)
        if amount <= 0:
            raise LockError("Increase amount must be positive")
        lock = self._active_lock(account, now)

        with atomic(*self._participants()):
            old_balance = self.balance_of(account, now)
            self.token.transfer(account, self.address, amount)
            lock = replace(lock, amount=checked_add(lock.amount, amount, "lock amount"))
            self.locks[account] = lock
            self._publish(account, old_balance, now)
        return lock

    def extend_lock(self, account: str, unlock_time: int, now: int) -> EscrowLock:
        self._require_allowed(account)
        lock = self._active_lock(account, now)
        if unlock_time <= lock.unlock_time:
            raise LockError("New unlock time must be later than the current one")
        self._check_unlock_time(unlock_time, lock.start, now)

        with atomic(*self._participants()):
            old_balance = self.balance_of(account, now)
            self.locks[account] = replace(lock, unlock_time=unlock_time)
            self._publish(account, old_balance, now)
        return self.locks[account]

    def withdraw(self, account: str, now: int) -> int:
        """Return an expired lock's tokens to its owner."""
        lock = self.locks.get(account)
        if lock is None:
            raise LockError(f"{account} has no lock")
        if now < lock.unlock_time:
            raise LockError(f"Lock of {account} is active until {lock.unlock_time}")

        with atomic(*self._participants()):
            del self.locks[account]
            self.token.transfer(self.address, account, lock.amount)
            self._publish(account, 0, now)
        logger.info(f"{account} withdrew {lock.amount} from escrow")
        return lock.amount

    def checkpoint(self, account: str, now: int):
        """Publish the current balance so subscribers can account for decay."""
        with atomic(*self._participants()):
            self._publish(account, self.balance_of(account, now), now)
