"""
Database models for the staking ledger.

Snapshots of farm, escrow and voter state plus a journal of ledger
operations. Token amounts and accumulators are unsigned 256-bit integers,
stored losslessly as decimal strings.
"""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class UintType(TypeDecorator):
    """SQLAlchemy type for 256-bit unsigned integers"""
    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Convert int to its decimal string when storing in database"""
        if value is None:
            return None
        return str(int(value))

    def process_result_value(self, value, dialect):
        """Convert decimal string back to int when loading from database"""
        if value is None:
            return None
        return int(value)


class FarmStateRecord(Base):
    """Global configuration and totals of a farm."""

    __tablename__ = "farm_state"

    id = Column(Integer, primary_key=True)
    farm_address = Column(String(255), index=True, unique=True)
    owner = Column(String(255))
    token = Column(String(255), nullable=True)
    escrow = Column(String(255), nullable=True)
    voter = Column(String(255), nullable=True)
    token_per_sec = Column(UintType, default=0)
    diluting_repartition = Column(Integer)
    max_boost = Column(Integer)
    start_timestamp = Column(BigInteger, default=0)
    total_alloc_point = Column(UintType, default=0)
    initialized = Column(Boolean, default=False)
    paused = Column(Boolean, default=False)
    updated_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "farm_address": self.farm_address,
            "owner": self.owner,
            "token": self.token,
            "escrow": self.escrow,
            "voter": self.voter,
            "token_per_sec": self.token_per_sec,
            "diluting_repartition": self.diluting_repartition,
            "max_boost": self.max_boost,
            "start_timestamp": self.start_timestamp,
            "total_alloc_point": self.total_alloc_point,
            "initialized": self.initialized,
            "paused": self.paused,
        }


class PoolRecord(Base):
    """Snapshot of one farm pool."""

    __tablename__ = "farm_pools"
    __table_args__ = (UniqueConstraint("farm_address", "pid"),)

    id = Column(Integer, primary_key=True)
    farm_address = Column(String(255), index=True)
    pid = Column(Integer)
    lp_token = Column(String(255), index=True)
    base_alloc_point = Column(UintType, default=0)
    vote_alloc_point = Column(UintType, default=0)
    last_reward_time = Column(BigInteger, default=0)
    acc_reward_per_share = Column(UintType, default=0)
    acc_reward_per_factor_share = Column(UintType, default=0)
    total_staked = Column(UintType, default=0)
    sum_of_factors = Column(UintType, default=0)
    total_emitted = Column(UintType, default=0)
    rewarder = Column(String(255), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "pid": self.pid,
            "lp_token": self.lp_token,
            "base_alloc_point": self.base_alloc_point,
            "vote_alloc_point": self.vote_alloc_point,
            "last_reward_time": self.last_reward_time,
            "acc_reward_per_share": self.acc_reward_per_share,
            "acc_reward_per_factor_share": self.acc_reward_per_factor_share,
            "total_staked": self.total_staked,
            "sum_of_factors": self.sum_of_factors,
            "total_emitted": self.total_emitted,
            "rewarder": self.rewarder,
        }


class PositionRecord(Base):
    """Snapshot of one account's position in a pool."""

    __tablename__ = "farm_positions"
    __table_args__ = (UniqueConstraint("farm_address", "pid", "account"),)

    id = Column(Integer, primary_key=True)
    farm_address = Column(String(255), index=True)
    pid = Column(Integer, index=True)
    account = Column(String(255), index=True)
    amount = Column(UintType, default=0)
    reward_debt = Column(UintType, default=0)
    factor = Column(UintType, default=0)
    claimable = Column(UintType, default=0)
    claimed = Column(UintType, default=0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "pid": self.pid,
            "account": self.account,
            "amount": self.amount,
            "reward_debt": self.reward_debt,
            "factor": self.factor,
            "claimable": self.claimable,
            "claimed": self.claimed,
        }


class EscrowLockRecord(Base):
    """Snapshot of one escrow lock."""

    __tablename__ = "escrow_locks"
    __table_args__ = (UniqueConstraint("escrow_address", "account"),)

    id = Column(Integer, primary_key=True)
    escrow_address = Column(String(255), index=True)
    account = Column(String(255), index=True)
    amount = Column(UintType, default=0)
    start = Column(BigInteger)
    unlock_time = Column(BigInteger, index=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "account": self.account,
            "amount": self.amount,
            "start": self.start,
            "unlock_time": self.unlock_time,
        }


class VoterStateRecord(Base):
    """Epoch state of a gauge voter."""

    __tablename__ = "voter_state"

    id = Column(Integer, primary_key=True)
    voter_address = Column(String(255), index=True, unique=True)
    epoch = Column(Integer, default=0)
    epoch_end = Column(BigInteger)
    phase = Column(String(32), default="open")  # "open", "locked"
    total_votes = Column(UintType, default=0)
    vote_alloc_points = Column(UintType, default=0)
    dirty = Column(Boolean, default=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "voter_address": self.voter_address,
            "epoch": self.epoch,
            "epoch_end": self.epoch_end,
            "phase": self.phase,
            "total_votes": self.total_votes,
            "vote_alloc_points": self.vote_alloc_points,
            "dirty": self.dirty,
        }


class GaugeRecord(Base):
    """Snapshot of one gauge."""

    __tablename__ = "voter_gauges"
    __table_args__ = (UniqueConstraint("voter_address", "lp_token"),)

    id = Column(Integer, primary_key=True)
    voter_address = Column(String(255), index=True)
    lp_token = Column(String(255), index=True)
    farm_address = Column(String(255))
    bribe = Column(String(255), nullable=True)
    votes = Column(UintType, default=0)
    vote_alloc_point = Column(UintType, default=0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "lp_token": self.lp_token,
            "farm_address": self.farm_address,
            "bribe": self.bribe,
            "votes": self.votes,
            "vote_alloc_point": self.vote_alloc_point,
        }


class VoteAllocationRecord(Base):
    """Weight an account puts on a gauge."""

    __tablename__ = "voter_allocations"
    __table_args__ = (UniqueConstraint("voter_address", "account", "lp_token"),)

    id = Column(Integer, primary_key=True)
    voter_address = Column(String(255), index=True)
    account = Column(String(255), index=True)
    lp_token = Column(String(255), index=True)
    weight = Column(UintType, default=0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "account": self.account,
            "lp_token": self.lp_token,
            "weight": self.weight,
        }


class LedgerEvent(Base):
    """Journal entry for one committed ledger operation."""

    __tablename__ = "ledger_events"

    id = Column(Integer, primary_key=True)
    kind = Column(String(32), index=True)  # "deposit", "withdraw", "claim", "lock", "vote", ...
    account = Column(String(255), index=True, nullable=True)
    pid = Column(Integer, nullable=True)
    amount = Column(UintType, default=0)
    timestamp = Column(BigInteger, index=True)
    details = Column(Text, nullable=True)
    recorded_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "kind": self.kind,
            "account": self.account,
            "pid": self.pid,
            "amount": self.amount,
            "timestamp": self.timestamp,
            "details": self.details,
        }
