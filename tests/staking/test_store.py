"""
Tests for the SQL ledger store.
"""

from contextlib import contextmanager

import pytest
from sqlalchemy.exc import OperationalError

from hummus.staking.database.store import LedgerStore
from hummus.staking.escrow.vote_escrow import VoteEscrow
from hummus.staking.farm import MasterFarm
from hummus.staking.voting.gauge_voter import GaugeVoter, VotingPhase
from tests.staking.helpers import E18, OWNER, lock_for, make_farm


@pytest.fixture
def store():
    store = LedgerStore("sqlite:///:memory:")
    store.initialize()
    yield store
    store.close()


class TestSnapshots:

    def test_farm_round_trip(self, store, hum, escrow, lp_a, lp_b):
        farm = make_farm(hum, escrow, diluting_repartition=375)
        lock_for(escrow, "alice", 4 * E18)
        pid_a = farm.add(100, lp_a, None, OWNER, 0)
        farm.add(300, lp_b, None, OWNER, 0)
        lp_a.mint("alice", E18)
        lp_a.mint("bob", 2 * E18)
        farm.deposit(pid_a, "alice", E18, 0)
        farm.deposit(pid_a, "bob", 2 * E18, 10)
        farm.claim(pid_a, "alice", 20)
        store.save_farm(farm)

        restored = MasterFarm(owner=OWNER)
        assert store.load_farm(restored, {t.address: t for t in (hum, lp_a, lp_b)}, escrow=escrow)

        assert restored.pool_length() == 2
        assert restored.get_pool(pid_a) == farm.get_pool(pid_a)
        assert restored.get_position(pid_a, "alice") == farm.get_position(pid_a, "alice")
        assert restored.dilution.diluting_repartition == 375
        assert restored.pid_of(lp_b) == 1
        for account in ("alice", "bob"):
            assert (
                restored.pending_tokens(pid_a, account, 500).pending_reward
                == farm.pending_tokens(pid_a, account, 500).pending_reward
            )

    def test_load_missing_farm(self, store):
        assert not store.load_farm(MasterFarm(owner=OWNER, address="nowhere"), {})

    def test_save_replaces_previous_snapshot(self, store, farm, lp_a):
        pid = farm.add(100, lp_a, None, OWNER, 0)
        store.save_farm(farm)
        farm.set(pid, 40, None, False, OWNER, 10)
        store.save_farm(farm)

        restored = MasterFarm(owner=OWNER)
        store.load_farm(restored, {lp_a.address: lp_a})
        assert restored.pool_length() == 1
        assert restored.get_pool(pid).base_alloc_point == 40

    def test_escrow_round_trip(self, store, escrow, hum):
        lock_for(escrow, "alice", 4 * E18)
        lock_for(escrow, "bob", E18)
        store.save_escrow(escrow)

        restored = VoteEscrow(hum, decaying=False)
        assert store.load_escrow(restored) == 2
        assert restored.locks == escrow.locks
        assert restored.balance_of("alice", 100) == escrow.balance_of("alice", 100)

    def test_voter_round_trip(self, store, farm, escrow, lp_a, lp_b):
        farm.add(100, lp_a, None, OWNER, 0)
        farm.add(100, lp_b, None, OWNER, 0)
        voter = GaugeVoter(escrow, OWNER)
        farm.set_voter(voter, OWNER)
        voter.add_gauge(farm, lp_a, caller=OWNER)
        voter.add_gauge(farm, lp_b, caller=OWNER)
        lock_for(escrow, "alice", 100 * E18)
        voter.reallocate("alice", {lp_a: 30 * E18, lp_b: 70 * E18}, 10)
        voter.lock_epoch(OWNER, 20)
        store.save_voter(voter)

        restored = GaugeVoter(escrow, OWNER)
        tokens = {lp_a.address: lp_a, lp_b.address: lp_b}
        assert store.load_voter(restored, {farm.address: farm}, tokens)

        assert restored.phase is VotingPhase.LOCKED
        assert restored.allocations == voter.allocations
        assert restored.total_votes == 100 * E18
        assert restored.get_gauge(lp_b).votes == 70 * E18
        assert restored.get_gauge(lp_b).farm is farm


class TestJournal:

    def test_events_in_commit_order(self, store):
        store.record_event("deposit", 10, account="alice", pid=0, amount=E18)
        store.record_event("claim", 20, account="alice", pid=0, amount=5 * E18, details={"paid": 5})
        store.record_event("deposit", 30, account="bob", pid=1, amount=2 * E18)

        events = store.events()
        assert [event["kind"] for event in events] == ["deposit", "claim", "deposit"]
        assert events[1]["details"] == '{"paid": 5}'

        assert [event["account"] for event in store.events(kind="deposit")] == ["alice", "bob"]
        assert len(store.events(account="bob")) == 1

    def test_uint256_amounts_are_lossless(self, store):
        amount = 2 ** 256 - 1
        store.record_event("fund", 0, amount=amount)

        assert store.events("fund")[0]["amount"] == amount


class TestWriteRetries:

    @pytest.fixture
    def flaky_store(self, monkeypatch):
        """A store whose first `failures` write sessions raise OperationalError."""
        store = LedgerStore("sqlite:///:memory:", max_attempts=3, retry_delay=0)
        store.initialize()
        real_scope = store.session_scope
        store.failures = 1

        @contextmanager
        def flaky_scope():
            if store.failures:
                store.failures -= 1
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            with real_scope() as session:
                yield session

        monkeypatch.setattr(store, "session_scope", flaky_scope)
        yield store
        store.close()

    def test_locked_database_is_retried(self, flaky_store, farm, lp_a):
        farm.add(100, lp_a, None, OWNER, 0)

        flaky_store.save_farm(farm)

        assert flaky_store.retries == {"save_farm": 1}
        restored = MasterFarm(owner=OWNER)
        assert flaky_store.load_farm(restored, {lp_a.address: lp_a})
        assert restored.pool_length() == 1

    def test_retries_are_counted_per_kind(self, flaky_store):
        flaky_store.record_event("deposit", 1, account="alice", amount=5)

        assert flaky_store.retries == {"record_event:deposit": 1}
        assert [event["kind"] for event in flaky_store.events()] == ["deposit"]

    def test_gives_up_after_max_attempts(self, flaky_store):
        flaky_store.failures = 3

        with pytest.raises(OperationalError):
            flaky_store.record_event("claim", 1)

        assert flaky_store.retries == {"record_event:claim": 2}
        assert flaky_store.events() == []

    def test_other_errors_are_not_retried(self, store):
        def broken(session):
            raise ValueError("bad row")

        with pytest.raises(ValueError):
            store._write("save_farm", broken)

        assert store.retries == {}
