"""
Staking system for Hummus.

This module wires the staking components into one object: the reward token,
the voting escrow, the farm, the gauge voter and the ledger store. Every
operation run through the system is journaled to the store once it has
committed.
"""

import logging
from typing import Any, Dict, List, Optional

from hummus.staking.config import DEFAULT_FARM_CONFIG, load_farm_config
from hummus.staking.database.store import LedgerStore
from hummus.staking.escrow.vote_escrow import VoteEscrow
from hummus.staking.farm import MasterFarm, PendingTokens
from hummus.staking.rewarders.bribe import Bribe
from hummus.staking.tokens import Token
from hummus.staking.voting.gauge_voter import GaugeVoter

logger = logging.getLogger(__name__)


class FarmSystem:
    """
    Staking system for Hummus.

    The system holds:
    1. The reward token, which is also the token locked in the escrow
    2. The voting escrow that boosts farm rewards and carries voting power
    3. The farm with its pools
    4. The gauge voter that turns votes into pool weights

    Args:
        config: Farm configuration; missing keys take their defaults.
        reward_token: Reward token to use instead of a fresh HUM token.
        store: Ledger store to use instead of one built from database_url.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        reward_token: Token = None,
        store: LedgerStore = None,
    ):
        self.config = dict(DEFAULT_FARM_CONFIG)
        self.config.update(config or {})
        self.owner = self.config["owner"]

        logger.info("Initializing FarmSystem")
        logger.info(
            f"Parameters: token_per_sec={self.config['token_per_sec']}, "
            f"diluting_repartition={self.config['diluting_repartition']}, "
            f"max_boost={self.config['max_boost']}, epoch_length={self.config['epoch_length']}"
        )

        self.reward_token = reward_token or Token("HUM")
        self.tokens: Dict[str, Token] = {self.reward_token.address: self.reward_token}
        self.rewarders: Dict[str, Any] = {}
        self.bribes: Dict[str, Bribe] = {}

        self.escrow = VoteEscrow(self.reward_token, decaying=self.config["decaying_escrow"])
        self.farm = MasterFarm(
            owner=self.owner,
            rewarder_atomic=self.config["rewarder_atomic"],
            max_boost=self.config["max_boost"],
        )
        self.voter = GaugeVoter(
            self.escrow,
            owner=self.owner,
            vote_alloc_points=self.config["vote_alloc_points"],
            epoch_length=self.config["epoch_length"],
            start_timestamp=self.config["start_timestamp"],
        )
        self.store = store or LedgerStore(self.config["database_url"])
        self.store.initialize()

    @classmethod
    def from_config(cls, config_override: Optional[Dict[str, Any]] = None, **kwargs) -> "FarmSystem":
        """Build a system from load_farm_config()."""
        return cls(load_farm_config(config_override), **kwargs)

    def initialize(self, now: int):
        """Initialize the farm and register the voter with it."""
        self.farm.initialize(
            self.reward_token,
            self.escrow,
            self.config["token_per_sec"],
            self.config["diluting_repartition"],
            self.config["start_timestamp"],
            now,
            self.owner,
        )
        self.farm.set_voter(self.voter, self.owner)
        self.store.record_event("initialize", now, account=self.owner, details=self.config)
        logger.info(f"Farm system initialized at {now}")

    def fund_farm(self, amount: int, now: int):
        """Mint reward tokens into the farm."""
        self.reward_token.mint(self.farm.address, amount)
        self.store.record_event("fund", now, account=self.farm.address, amount=amount)

    def register_token(self, token: Token) -> Token:
        self.tokens[token.address] = token
        return token

    def register_rewarder(self, rewarder):
        self.rewarders[rewarder.address] = rewarder
        self.tokens.setdefault(rewarder.reward_token.address, rewarder.reward_token)
        return rewarder

    # ------------------------------------------------------------------
    # Pools and gauges
    # ------------------------------------------------------------------

    def add_pool(self, lp_token: Token, alloc_point: int, now: int, rewarder=None, gauge: bool = True) -> int:
        """
        Add a farm pool and, by default, a gauge voting on it.

        Returns:
            Pool id
        """
        self.register_token(lp_token)
        if rewarder is not None:
            self.register_rewarder(rewarder)
        pid = self.farm.add(alloc_point, lp_token, rewarder, self.owner, now)
        if gauge:
            self.voter.add_gauge(self.farm, lp_token, caller=self.owner)
        self.store.record_event(
            "add_pool", now, pid=pid, amount=alloc_point, details={"lp_token": lp_token.address}
        )
        return pid

    def add_bribe(self, lp_token: Token, reward_token: Token, token_per_sec: int, now: int) -> Bribe:
        bribe = Bribe(
            self.voter,
            lp_token,
            reward_token,
            token_per_sec,
            is_native=reward_token.is_native,
            start_timestamp=now,
        )
        self.voter.set_bribe(lp_token, bribe, self.owner)
        self.bribes[bribe.address] = bribe
        self.register_token(reward_token)
        self.store.record_event("add_bribe", now, details={"lp_token": lp_token.address, "bribe": bribe.address})
        return bribe

    # ------------------------------------------------------------------
    # Staking
    # ------------------------------------------------------------------

    def deposit(self, pid: int, account: str, amount: int, now: int) -> int:
        paid = self.farm.deposit(pid, account, amount, now)
        self.store.record_event("deposit", now, account=account, pid=pid, amount=amount, details={"paid": paid})
        return paid

    def withdraw(self, pid: int, account: str, amount: int, now: int) -> int:
        paid = self.farm.withdraw(pid, account, amount, now)
        self.store.record_event("withdraw", now, account=account, pid=pid, amount=amount, details={"paid": paid})
        return paid

    def claim(self, pid: int, account: str, now: int) -> int:
        paid = self.farm.claim(pid, account, now)
        self.store.record_event("claim", now, account=account, pid=pid, amount=paid)
        return paid

    def pending(self, pid: int, account: str, now: int) -> PendingTokens:
        return self.farm.pending_tokens(pid, account, now)

    # ------------------------------------------------------------------
    # Escrow and voting
    # ------------------------------------------------------------------

    def lock(self, account: str, amount: int, unlock_time: int, now: int):
        lock = self.escrow.create_lock(account, amount, unlock_time, now)
        self.store.record_event("lock", now, account=account, amount=amount, details={"unlock_time": unlock_time})
        return lock

    def increase_lock(self, account: str, amount: int, now: int):
        lock = self.escrow.increase_amount(account, amount, now)
        self.store.record_event("increase_lock", now, account=account, amount=amount)
        return lock

    def extend_lock(self, account: str, unlock_time: int, now: int):
        lock = self.escrow.extend_lock(account, unlock_time, now)
        self.store.record_event("extend_lock", now, account=account, details={"unlock_time": unlock_time})
        return lock

    def unlock(self, account: str, now: int) -> int:
        amount = self.escrow.withdraw(account, now)
        self.store.record_event("unlock", now, account=account, amount=amount)
        return amount

    def vote(self, account: str, allocations: Dict[Token, int], now: int):
        self.voter.reallocate(account, allocations, now)
        self.store.record_event(
            "vote",
            now,
            account=account,
            details={lp_token.address: weight for lp_token, weight in allocations.items()},
        )

    def distribute(self, now: int) -> Dict[str, int]:
        points = self.voter.distribute(now)
        self.store.record_event("distribute", now, details=points)
        return points

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def save(self):
        """Snapshot farm, escrow and voter state to the store."""
        self.store.save_escrow(self.escrow)
        self.store.save_farm(self.farm)
        self.store.save_voter(self.voter)
        logger.info("Farm system state saved")

    def load(self) -> bool:
        """Restore farm, escrow and voter state from the store."""
        self.store.load_escrow(self.escrow)
        loaded = self.store.load_farm(self.farm, self.tokens, self.rewarders, self.escrow)
        if loaded:
            self.store.load_voter(self.voter, {self.farm.address: self.farm}, self.tokens, self.bribes)
        logger.info(f"Farm system state {'restored' if loaded else 'not found'}")
        return loaded

    def journal(self, kind: str = None, account: str = None) -> List[Dict[str, Any]]:
        return self.store.events(kind, account)

    def status(self, now: int) -> Dict[str, Any]:
        """Summary of the system at now."""
        return {
            "pools": self.farm.pool_length(),
            "total_alloc_point": self.farm.total_alloc_point,
            "token_per_sec": self.farm.state.token_per_sec,
            "farm_balance": self.reward_token.balance_of(self.farm.address),
            "escrow_supply": self.escrow.total_supply(now),
            "escrow_locked": self.escrow.total_locked(),
            "epoch": self.voter.epoch,
            "phase": self.voter.phase.value,
            "total_votes": self.voter.total_votes,
        }
