"""
MasterFarm: the top-level staking ledger.

Wires RewardAccrual, ShareLedger and VoteEscrowDilution together, checks
callers, moves tokens and talks to attached rewarders. Every public
mutating method runs in one transaction: it either fully commits or leaves
every component it touched exactly as it was.
"""

import logging
from collections import namedtuple
from typing import Any, List, Optional, Sequence, Tuple

from hummus.staking.core.dilution import DEFAULT_MAX_BOOST, VoteEscrowDilution
from hummus.staking.core.errors import FarmError, FarmPaused, InvalidParameter, Unauthorized
from hummus.staking.core.reward_accrual import FarmState, Pool, RewardAccrual, advance_pool
from hummus.staking.core.share_ledger import ShareLedger, UserPosition, pending_reward
from hummus.staking.core.transaction import Transactional, atomic, transactional
from hummus.staking.events import LockChanged

logger = logging.getLogger(__name__)

PendingTokens = namedtuple("PendingTokens", ["pending_reward", "bonus_token", "pending_bonus"])


class MasterFarm(Transactional):
    """
    Staking farm with a base emission split by allocation points and an
    escrow-boosted second stream.

    Args:
        owner: Account allowed to run administrative operations
        address: Account holding staked tokens and the reward token balance
        rewarder_atomic: If True a failing rewarder payout fails the whole
            farm operation; otherwise the bonus stays owed by the rewarder
        max_boost: Boost cap in parts per 1000
    """

    _transactional_fields = ("paused",)

    def __init__(
        self,
        owner: str,
        address: str = "farm",
        rewarder_atomic: bool = False,
        max_boost: int = DEFAULT_MAX_BOOST,
    ):
        self.address = address
        self.rewarder_atomic = rewarder_atomic
        self.dilution = VoteEscrowDilution(max_boost=max_boost)
        self.accrual = RewardAccrual(owner, self.dilution)
        self.ledger = ShareLedger(self.accrual)
        self.paused = False

    def _participants(self):
        return (self, self.accrual, self.ledger, self.dilution)

    @property
    def state(self) -> FarmState:
        return self.accrual.state

    @property
    def owner(self) -> str:
        return self.state.owner

    @property
    def reward_token(self):
        return self.state.token

    @property
    def total_alloc_point(self) -> int:
        return self.state.total_alloc_point

    def _require_owner(self, caller: str):
        if caller != self.state.owner:
            raise Unauthorized(f"{caller} is not the farm owner")

    def _require_active(self):
        self.accrual.require_initialized()
        if self.paused:
            raise FarmPaused("Farm is paused")

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @transactional
    def initialize(
        self,
        token: Any,
        escrow: Any,
        token_per_sec: int,
        diluting_repartition: int,
        start_timestamp: int,
        now: int,
        caller: str,
    ):
        self._require_owner(caller)
        self.accrual.initialize(token, escrow, token_per_sec, diluting_repartition, start_timestamp, now)
        events = getattr(escrow, "events", None)
        if events is not None:
            events.subscribe(LockChanged, self.on_lock_changed)

    @transactional
    def add(self, alloc_point: int, lp_token: Any, rewarder: Any, caller: str, now: int) -> int:
        self._require_owner(caller)
        pid = self.accrual.add(alloc_point, lp_token, rewarder, now)
        self._seed_rewarder(pid, now)
        return pid

    @transactional
    def set(self, pid: int, alloc_point: int, rewarder: Any, overwrite: bool, caller: str, now: int):
        self._require_owner(caller)
        self.accrual.require_initialized()
        previous = self.accrual.get_pool(pid).rewarder
        self.accrual.set(pid, alloc_point, rewarder, overwrite, now)
        if self.accrual.get_pool(pid).rewarder is not previous:
            self._seed_rewarder(pid, now)

    @transactional
    def set_voter(self, voter: Optional[str], caller: str):
        self._require_owner(caller)
        self.state.voter = getattr(voter, "address", voter)
        logger.info(f"Voter set to {self.state.voter}")

    @transactional
    def set_vote_points(self, pid: int, points: int, caller: str, now: int) -> bool:
        """Set the vote-driven weight of a pool; only the voter may call this."""
        if self.state.voter is None or caller != self.state.voter:
            raise Unauthorized(f"{caller} is not the voter")
        return self.accrual.set_vote_points(pid, points, now)

    @transactional
    def update_emission_rate(self, token_per_sec: int, caller: str, now: int):
        self._require_owner(caller)
        self.accrual.update_emission_rate(token_per_sec, now)

    @transactional
    def update_emission_repartition(self, diluting_repartition: int, caller: str, now: int):
        self._require_owner(caller)
        self.accrual.update_emission_repartition(diluting_repartition, now)

    @transactional
    def transfer_ownership(self, new_owner: str, caller: str):
        self._require_owner(caller)
        if not new_owner:
            raise InvalidParameter("New owner must be set")
        self.state.owner = new_owner
        logger.info(f"Farm ownership transferred to {new_owner}")

    @transactional
    def pause(self, caller: str):
        self._require_owner(caller)
        self.paused = True
        logger.warning("Farm paused")

    @transactional
    def unpause(self, caller: str):
        self._require_owner(caller)
        self.paused = False
        logger.info("Farm unpaused")

    @transactional
    def mass_update_pools(self, now: int):
        self.accrual.mass_update_pools(now)

    @transactional
    def update_pool(self, pid: int, now: int) -> Pool:
        return self.accrual.update_pool(pid, now)

    # ------------------------------------------------------------------
    # Staking
    # ------------------------------------------------------------------

    @transactional
    def deposit(self, pid: int, account: str, amount: int, now: int) -> int:
        """
        Stake amount of the pool's token; amount 0 is a plain harvest.

        Returns:
            Base reward paid
        """
        self._require_active()
        pool = self.accrual.get_pool(pid)
        pool.lp_token.transfer(account, self.address, amount)
        position = self.ledger.deposit(pid, account, amount, now)
        paid = self._harvest(pid, account)
        self._notify_rewarder(pid, position, now)
        logger.debug(f"{account} deposited {amount} into pool {pid}, paid {paid}")
        return paid

    @transactional
    def withdraw(self, pid: int, account: str, amount: int, now: int) -> int:
        """
        Unstake amount; amount 0 is a plain harvest.

        Returns:
            Base reward paid
        """
        self._require_active()
        pool = self.accrual.get_pool(pid)
        position = self.ledger.withdraw(pid, account, amount, now)
        pool.lp_token.transfer(self.address, account, amount)
        paid = self._harvest(pid, account)
        self._notify_rewarder(pid, position, now)
        logger.debug(f"{account} withdrew {amount} from pool {pid}, paid {paid}")
        return paid

    @transactional
    def claim(self, pid: int, account: str, now: int) -> int:
        """Harvest base and bonus rewards and refresh the boost factor."""
        self._require_active()
        position = self.ledger.refresh(pid, account, now)
        paid = self._harvest(pid, account)
        self._notify_rewarder(pid, position, now)
        return paid

    @transactional
    def multi_claim(self, pids: Sequence[int], account: str, now: int) -> Tuple[int, List[int]]:
        """
        Claim from several pools at once.

        Returns:
            (total paid, amounts paid per pool in the order given)
        """
        self._require_active()
        amounts = []
        for pid in pids:
            position = self.ledger.refresh(pid, account, now)
            amounts.append(self._harvest(pid, account))
            self._notify_rewarder(pid, position, now)
        return sum(amounts), amounts

    @transactional
    def emergency_withdraw(self, pid: int, account: str, now: int) -> int:
        """
        Take the whole stake out without rewards.

        Works while the farm is paused.

        Returns:
            Amount returned
        """
        self.accrual.require_initialized()
        pool = self.accrual.get_pool(pid)
        amount = self.ledger.emergency_withdraw(pid, account, now)
        pool.lp_token.transfer(self.address, account, amount)
        if pool.rewarder is not None:
            self._isolated(pool.rewarder.on_reward, account, 0, now, self.address)
        logger.warning(f"{account} emergency-withdrew {amount} from pool {pid}")
        return amount

    # ------------------------------------------------------------------
    # Escrow coupling
    # ------------------------------------------------------------------

    @transactional
    def sync_factor(self, pid: int, account: str, now: int) -> Tuple[int, int]:
        """Re-settle an account under its old factor and apply its current escrow balance."""
        self.accrual.require_initialized()
        return self.ledger.sync_factor(pid, account, now)

    def on_lock_changed(self, event: LockChanged):
        """Re-sync every pool the account has a stake in."""
        with atomic(*self._participants()):
            for position in self.ledger.positions_of(event.account):
                if position.amount > 0:
                    self.ledger.sync_factor(position.pid, event.account, event.timestamp)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def pool_length(self) -> int:
        return self.accrual.pool_length()

    def get_pool(self, pid: int) -> Pool:
        return self.accrual.get_pool(pid)

    def pid_of(self, lp_token: Any) -> int:
        return self.accrual.pid_of(lp_token)

    def get_position(self, pid: int, account: str) -> UserPosition:
        return self.ledger.position(pid, account)

    def pool_total_staked(self, pid: int) -> int:
        return self.accrual.get_pool(pid).total_staked

    def pending_tokens(self, pid: int, account: str, now: int) -> PendingTokens:
        """Base and bonus reward an account would receive by claiming at now."""
        pool, _ = advance_pool(
            self.accrual.get_pool(pid),
            now,
            self.state.token_per_sec,
            self.state.total_alloc_point,
            self.dilution.diluting_repartition,
        )
        pending = pending_reward(self.ledger.position(pid, account), pool)

        bonus_token = None
        pending_bonus = 0
        if pool.rewarder is not None:
            bonus_token = pool.rewarder.reward_token
            pending_bonus = pool.rewarder.pending_tokens(account, now)
        return PendingTokens(pending, bonus_token, pending_bonus)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _harvest(self, pid: int, account: str) -> int:
        token = self.state.token
        available = token.balance_of(self.address)
        paid = self.ledger.harvest(pid, account, limit=available)
        token.transfer(self.address, account, paid)
        return paid

    def _seed_rewarder(self, pid: int, now: int):
        """Give a newly attached rewarder the pool's current stakes as its share basis."""
        rewarder = self.accrual.get_pool(pid).rewarder
        if rewarder is None:
            return
        for account, position in sorted(self.ledger.positions.get(pid, {}).items()):
            if position.amount > 0:
                rewarder.on_reward(account, position.amount, now, self.address)
        logger.info(f"Attached {rewarder!r} to pool {pid}")

    def _notify_rewarder(self, pid: int, position: UserPosition, now: int):
        rewarder = self.accrual.get_pool(pid).rewarder
        if rewarder is None:
            return
        rewarder.on_reward(position.account, position.amount, now, self.address)
        self._isolated(rewarder.pay_reward, position.account, self.address)

    def _isolated(self, hook, *args):
        """Run a rewarder hook; its failure fails the farm only when rewarder_atomic."""
        if self.rewarder_atomic:
            return hook(*args)
        try:
            return hook(*args)
        except FarmError as e:
            logger.warning(f"Rewarder hook {getattr(hook, '__name__', hook)} failed, farm operation kept: {e}")
            return None
