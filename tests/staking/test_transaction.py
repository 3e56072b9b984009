"""
Tests for snapshot/rollback transactions.
"""

from dataclasses import dataclass

import pytest

from hummus.staking.core.errors import TransactionError
from hummus.staking.core.transaction import Transactional, atomic, in_transaction, transactional


@dataclass
class Entry:
    value: int = 0


class Ledger(Transactional):
    _transactional_fields = ("total", "entries")

    def __init__(self, peer=None):
        self.total = 0
        self.entries = {}
        self.peer = peer

    def _participants(self):
        return (self,)

    @transactional
    def record(self, key, value, fail=False):
        self.total += value
        self.entries[key] = Entry(value)
        if self.peer is not None:
            self.peer.record(key, value)
        if fail:
            raise RuntimeError("boom")


class TestAtomic:

    def test_commit_keeps_changes(self):
        ledger = Ledger()
        ledger.record("a", 5)

        assert ledger.total == 5
        assert ledger.entries == {"a": Entry(5)}

    def test_failure_restores_snapshot(self):
        ledger = Ledger()
        ledger.record("a", 5)

        with pytest.raises(RuntimeError):
            ledger.record("b", 7, fail=True)

        assert ledger.total == 5
        assert ledger.entries == {"a": Entry(5)}

    def test_records_are_copied_not_shared(self):
        ledger = Ledger()
        ledger.record("a", 5)

        with pytest.raises(RuntimeError):
            with atomic(ledger):
                ledger.entries["a"].value = 99
                raise RuntimeError("boom")

        assert ledger.entries["a"].value == 5

    def test_nested_participants_roll_back_with_outer_block(self):
        peer = Ledger()
        ledger = Ledger(peer=peer)

        with pytest.raises(RuntimeError):
            ledger.record("a", 5, fail=True)

        # peer committed its own nested block, the outer failure still undoes it
        assert peer.total == 0
        assert peer.entries == {}

    def test_inner_failure_caught_inside_outer_block(self):
        first = Ledger()
        second = Ledger()

        with atomic(first):
            first.record("a", 1)
            try:
                second.record("b", 2, fail=True)
            except RuntimeError:
                pass

        assert first.total == 1
        assert second.total == 0

    def test_non_transactional_participant_rejected(self):
        with pytest.raises(TransactionError):
            with atomic(object()):
                pass

    def test_in_transaction(self):
        assert not in_transaction()
        with atomic(Ledger()):
            assert in_transaction()
        assert not in_transaction()
