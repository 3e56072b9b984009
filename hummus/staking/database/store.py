"""
Persistence for the staking ledger.

LedgerStore snapshots the in-memory state of a farm, an escrow and a voter
into SQL tables and restores it, and keeps a journal of committed ledger
operations. Objects that cannot be stored (tokens, rewarders, bribes, farms)
are saved by address and resolved through registries on load.
"""

import json
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import create_engine, delete, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from hummus.staking.core.reward_accrual import FarmState, Pool, token_key
from hummus.staking.core.share_ledger import UserPosition
from hummus.staking.database.models import (
    Base,
    EscrowLockRecord,
    FarmStateRecord,
    GaugeRecord,
    LedgerEvent,
    PoolRecord,
    PositionRecord,
    VoteAllocationRecord,
    VoterStateRecord,
)
from hummus.staking.escrow.vote_escrow import EscrowLock
from hummus.staking.events import LockChanged
from hummus.staking.voting.gauge_voter import Gauge, VotingPhase

logger = logging.getLogger(__name__)


def _address(obj: Any) -> Optional[str]:
    if obj is None:
        return None
    return getattr(obj, "address", obj)


def _resolve(registry: Optional[Mapping[str, Any]], address: Optional[str]) -> Any:
    """Look an address up in a registry, keeping the bare address if absent."""
    if address is None:
        return None
    if registry and address in registry:
        return registry[address]
    return address


class LedgerStore:
    """
    SQL-backed snapshots and journal.

    Writes that hit an ``OperationalError`` (a locked or unreachable
    database) are retried with exponential backoff; each write runs in a
    fresh session so a retry never sees half of a failed snapshot.
    ``retries`` counts the retried attempts per write kind.

    Args:
        database_url: SQLAlchemy database URL
        echo: Log every SQL statement
        max_attempts: Attempts per write before the error propagates
        retry_delay: Seconds before the first retry
        max_retry_delay: Upper bound of the backoff delay
    """

    def __init__(
        self,
        database_url: str = "sqlite:///:memory:",
        echo: bool = False,
        max_attempts: int = 3,
        retry_delay: float = 0.1,
        max_retry_delay: float = 2.0,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.database_url = database_url
        self.engine = create_engine(database_url, echo=echo)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self.retries: Dict[str, int] = {}
        self._initialized = False

    def initialize(self):
        """Create the tables if they do not exist."""
        if self._initialized:
            return
        Base.metadata.create_all(self.engine)
        self._initialized = True
        logger.info(f"Ledger store initialized at {self.database_url}")

    def close(self):
        self.engine.dispose()

    @contextmanager
    def session_scope(self):
        """Provide a transactional scope around a series of operations."""
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Ledger store session rolled back: {e}")
            raise
        finally:
            session.close()

    def _write(self, kind: str, work: Callable[[Any], None]):
        """Run work(session) in its own transaction, retrying operational errors."""
        delay = self.retry_delay
        for attempt in range(1, self.max_attempts + 1):
            try:
                with self.session_scope() as session:
                    work(session)
                return
            except OperationalError as e:
                if attempt == self.max_attempts:
                    logger.error(f"Ledger store {kind} failed after {attempt} attempts: {e}")
                    raise
                self.retries[kind] = self.retries.get(kind, 0) + 1
                logger.warning(
                    f"Ledger store {kind} attempt {attempt}/{self.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.2f}s..."
                )
                time.sleep(delay)
                delay = min(delay * 2, self.max_retry_delay)

    # ------------------------------------------------------------------
    # Farm
    # ------------------------------------------------------------------

    def save_farm(self, farm):
        """Replace the stored snapshot of farm with its current state."""
        state = farm.state

        def write(session):
            session.execute(delete(FarmStateRecord).where(FarmStateRecord.farm_address == farm.address))
            session.execute(delete(PoolRecord).where(PoolRecord.farm_address == farm.address))
            session.execute(delete(PositionRecord).where(PositionRecord.farm_address == farm.address))

            session.add(
                FarmStateRecord(
                    farm_address=farm.address,
                    owner=state.owner,
                    token=_address(state.token),
                    escrow=_address(state.escrow),
                    voter=state.voter,
                    token_per_sec=state.token_per_sec,
                    diluting_repartition=farm.dilution.diluting_repartition,
                    max_boost=farm.dilution.max_boost,
                    start_timestamp=state.start_timestamp,
                    total_alloc_point=state.total_alloc_point,
                    initialized=state.initialized,
                    paused=farm.paused,
                )
            )
            for pool in farm.accrual.pools:
                session.add(
                    PoolRecord(
                        farm_address=farm.address,
                        pid=pool.pid,
                        lp_token=token_key(pool.lp_token),
                        base_alloc_point=pool.base_alloc_point,
                        vote_alloc_point=pool.vote_alloc_point,
                        last_reward_time=pool.last_reward_time,
                        acc_reward_per_share=pool.acc_reward_per_share,
                        acc_reward_per_factor_share=pool.acc_reward_per_factor_share,
                        total_staked=pool.total_staked,
                        sum_of_factors=pool.sum_of_factors,
                        total_emitted=pool.total_emitted,
                        rewarder=_address(pool.rewarder),
                    )
                )
            for by_account in farm.ledger.positions.values():
                for position in by_account.values():
                    session.add(
                        PositionRecord(
                            farm_address=farm.address,
                            pid=position.pid,
                            account=position.account,
                            amount=position.amount,
                            reward_debt=position.reward_debt,
                            factor=position.factor,
                            claimable=position.claimable,
                            claimed=position.claimed,
                        )
                    )

        self._write("save_farm", write)
        logger.debug(f"Saved farm {farm.address} with {farm.pool_length()} pools")

    def load_farm(
        self,
        farm,
        tokens: Mapping[str, Any],
        rewarders: Optional[Mapping[str, Any]] = None,
        escrow=None,
    ) -> bool:
        """
        Restore a stored snapshot into a freshly constructed farm.

        Args:
            farm: Farm to restore into, matched by address
            tokens: Token objects by address, for the reward and staked tokens
            rewarders: Rewarder objects by address
            escrow: Escrow the farm reads boosts from

        Returns:
            False if nothing is stored for the farm
        """
        with self.session_scope() as session:
            record = session.execute(
                select(FarmStateRecord).where(FarmStateRecord.farm_address == farm.address)
            ).scalar_one_or_none()
            if record is None:
                return False
            pools = session.execute(
                select(PoolRecord).where(PoolRecord.farm_address == farm.address).order_by(PoolRecord.pid)
            ).scalars().all()
            positions = session.execute(
                select(PositionRecord).where(PositionRecord.farm_address == farm.address)
            ).scalars().all()

        farm.accrual.state = FarmState(
            owner=record.owner,
            token=_resolve(tokens, record.token),
            escrow=escrow if escrow is not None else record.escrow,
            voter=record.voter,
            token_per_sec=record.token_per_sec,
            start_timestamp=record.start_timestamp,
            total_alloc_point=record.total_alloc_point,
            initialized=record.initialized,
        )
        farm.paused = record.paused
        farm.dilution.escrow = escrow
        farm.dilution.max_boost = record.max_boost
        farm.dilution.update_repartition(record.diluting_repartition)

        farm.accrual.pools = []
        farm.accrual.lp_index = {}
        for row in pools:
            pool = Pool(
                pid=row.pid,
                lp_token=_resolve(tokens, row.lp_token),
                base_alloc_point=row.base_alloc_point,
                last_reward_time=row.last_reward_time,
                rewarder=_resolve(rewarders, row.rewarder),
                vote_alloc_point=row.vote_alloc_point,
                acc_reward_per_share=row.acc_reward_per_share,
                acc_reward_per_factor_share=row.acc_reward_per_factor_share,
                total_staked=row.total_staked,
                sum_of_factors=row.sum_of_factors,
                total_emitted=row.total_emitted,
            )
            farm.accrual.pools.append(pool)
            farm.accrual.lp_index[row.lp_token] = row.pid

        farm.ledger.positions = {}
        for row in positions:
            farm.ledger.positions.setdefault(row.pid, {})[row.account] = UserPosition(
                pid=row.pid,
                account=row.account,
                amount=row.amount,
                reward_debt=row.reward_debt,
                factor=row.factor,
                claimable=row.claimable,
                claimed=row.claimed,
            )

        if escrow is not None and record.initialized:
            escrow.events.subscribe(LockChanged, farm.on_lock_changed)
        logger.info(f"Loaded farm {farm.address}: {len(pools)} pools, {len(positions)} positions")
        return True

    # ------------------------------------------------------------------
    # Escrow
    # ------------------------------------------------------------------

    def save_escrow(self, escrow):
        def write(session):
            session.execute(delete(EscrowLockRecord).where(EscrowLockRecord.escrow_address == escrow.address))
            for lock in escrow.locks.values():
                session.add(
                    EscrowLockRecord(
                        escrow_address=escrow.address,
                        account=lock.account,
                        amount=lock.amount,
                        start=lock.start,
                        unlock_time=lock.unlock_time,
                    )
                )

        self._write("save_escrow", write)
        logger.debug(f"Saved {len(escrow.locks)} locks of escrow {escrow.address}")

    def load_escrow(self, escrow) -> int:
        """Restore stored locks; returns how many were loaded."""
        with self.session_scope() as session:
            rows = session.execute(
                select(EscrowLockRecord).where(EscrowLockRecord.escrow_address == escrow.address)
            ).scalars().all()
        escrow.locks = {
            row.account: EscrowLock(
                account=row.account,
                amount=row.amount,
                start=row.start,
                unlock_time=row.unlock_time,
            )
            for row in rows
        }
        return len(rows)

    # ------------------------------------------------------------------
    # Voter
    # ------------------------------------------------------------------

    def save_voter(self, voter):
        def write(session):
            session.execute(delete(VoterStateRecord).where(VoterStateRecord.voter_address == voter.address))
            session.execute(delete(GaugeRecord).where(GaugeRecord.voter_address == voter.address))
            session.execute(
                delete(VoteAllocationRecord).where(VoteAllocationRecord.voter_address == voter.address)
            )

            session.add(
                VoterStateRecord(
                    voter_address=voter.address,
                    epoch=voter.epoch,
                    epoch_end=voter.epoch_end,
                    phase=voter.phase.value,
                    total_votes=voter.total_votes,
                    vote_alloc_points=voter.vote_alloc_points,
                    dirty=voter.dirty,
                )
            )
            for gauge in voter.gauges.values():
                session.add(
                    GaugeRecord(
                        voter_address=voter.address,
                        lp_token=gauge.key,
                        farm_address=_address(gauge.farm),
                        bribe=_address(gauge.bribe),
                        votes=gauge.votes,
                        vote_alloc_point=gauge.vote_alloc_point,
                    )
                )
            for account, allocations in voter.allocations.items():
                for key, weight in allocations.items():
                    session.add(
                        VoteAllocationRecord(
                            voter_address=voter.address,
                            account=account,
                            lp_token=key,
                            weight=weight,
                        )
                    )

        self._write("save_voter", write)
        logger.debug(f"Saved voter {voter.address} at epoch {voter.epoch}")

    def load_voter(
        self,
        voter,
        farms: Mapping[str, Any],
        tokens: Mapping[str, Any],
        bribes: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Restore a stored voter snapshot; returns False if none exists."""
        with self.session_scope() as session:
            record = session.execute(
                select(VoterStateRecord).where(VoterStateRecord.voter_address == voter.address)
            ).scalar_one_or_none()
            if record is None:
                return False
            gauges = session.execute(
                select(GaugeRecord).where(GaugeRecord.voter_address == voter.address)
            ).scalars().all()
            allocations = session.execute(
                select(VoteAllocationRecord).where(VoteAllocationRecord.voter_address == voter.address)
            ).scalars().all()

        voter.epoch = record.epoch
        voter.epoch_end = record.epoch_end
        voter.phase = VotingPhase(record.phase)
        voter.total_votes = record.total_votes
        voter.vote_alloc_points = record.vote_alloc_points
        voter.dirty = record.dirty
        voter.gauges = {
            row.lp_token: Gauge(
                lp_token=_resolve(tokens, row.lp_token),
                farm=farms[row.farm_address],
                bribe=_resolve(bribes, row.bribe),
                votes=row.votes,
                vote_alloc_point=row.vote_alloc_point,
            )
            for row in gauges
        }
        voter.allocations = {}
        for row in allocations:
            voter.allocations.setdefault(row.account, {})[row.lp_token] = row.weight
        logger.info(f"Loaded voter {voter.address}: epoch {voter.epoch}, {len(gauges)} gauges")
        return True

    # ------------------------------------------------------------------
    # Journal
    # ------------------------------------------------------------------

    def record_event(
        self,
        kind: str,
        timestamp: int,
        account: str = None,
        pid: int = None,
        amount: int = 0,
        details: Dict[str, Any] = None,
    ):
        def write(session):
            session.add(
                LedgerEvent(
                    kind=kind,
                    account=account,
                    pid=pid,
                    amount=amount,
                    timestamp=timestamp,
                    details=json.dumps(details, default=str) if details else None,
                )
            )

        self._write(f"record_event:{kind}", write)

    def events(self, kind: str = None, account: str = None) -> List[Dict[str, Any]]:
        """Journal entries in commit order, optionally filtered."""
        query = select(LedgerEvent).order_by(LedgerEvent.id)
        if kind is not None:
            query = query.where(LedgerEvent.kind == kind)
        if account is not None:
            query = query.where(LedgerEvent.account == account)
        with self.session_scope() as session:
            return [row.to_dict() for row in session.execute(query).scalars().all()]
