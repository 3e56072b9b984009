"""
Tests for MasterFarm: base emission, pool weights, staking and claims.
"""

import pytest

from hummus.staking.core.errors import (
    AlreadyInitialized,
    DuplicatePool,
    FarmPaused,
    InsufficientBalance,
    InvalidParameter,
    NotInitialized,
    PoolNotFound,
    Unauthorized,
)
from hummus.staking.farm import MasterFarm
from hummus.staking.rewarders.rewarder import Rewarder
from tests.staking.helpers import E18, OWNER, lock_for, make_farm


class TestEmission:
    """Reward accrual across pools."""

    def test_single_pool_accrues_full_rate(self, farm, lp_a):
        pid = farm.add(100, lp_a, None, OWNER, 0)
        lp_a.mint("alice", E18)
        farm.deposit(pid, "alice", E18, 0)

        assert farm.pending_tokens(pid, "alice", 100).pending_reward == 100 * E18

    def test_two_pools_split_by_alloc_point(self, farm, lp_a, lp_b):
        pid_a = farm.add(100, lp_a, None, OWNER, 0)
        pid_b = farm.add(300, lp_b, None, OWNER, 0)
        lp_a.mint("alice", E18)
        lp_b.mint("bob", E18)
        farm.deposit(pid_a, "alice", E18, 0)
        farm.deposit(pid_b, "bob", E18, 0)

        assert farm.total_alloc_point == 400
        assert farm.pending_tokens(pid_a, "alice", 100).pending_reward == 25 * E18
        assert farm.pending_tokens(pid_b, "bob", 100).pending_reward == 75 * E18

    def test_stakers_share_pool_reward_pro_rata(self, farm, lp_a):
        pid = farm.add(100, lp_a, None, OWNER, 0)
        lp_a.mint("alice", 3 * E18)
        lp_a.mint("bob", E18)
        farm.deposit(pid, "alice", 3 * E18, 0)
        farm.deposit(pid, "bob", E18, 0)

        assert farm.pending_tokens(pid, "alice", 100).pending_reward == 75 * E18
        assert farm.pending_tokens(pid, "bob", 100).pending_reward == 25 * E18

    def test_empty_pool_window_is_not_credited(self, farm, lp_a):
        pid = farm.add(100, lp_a, None, OWNER, 0)
        lp_a.mint("alice", E18)
        farm.deposit(pid, "alice", E18, 50)

        assert farm.get_pool(pid).last_reward_time == 50
        assert farm.pending_tokens(pid, "alice", 100).pending_reward == 50 * E18

    def test_rate_change_prices_past_window_at_old_rate(self, farm, lp_a):
        pid = farm.add(100, lp_a, None, OWNER, 0)
        lp_a.mint("alice", E18)
        farm.deposit(pid, "alice", E18, 0)

        farm.update_emission_rate(2 * E18, OWNER, 50)

        assert farm.pending_tokens(pid, "alice", 100).pending_reward == 150 * E18

    def test_weight_change_prices_past_window_at_old_weight(self, farm, lp_a, lp_b):
        pid_a = farm.add(100, lp_a, None, OWNER, 0)
        farm.add(100, lp_b, None, OWNER, 0)
        lp_a.mint("alice", E18)
        farm.deposit(pid_a, "alice", E18, 0)

        farm.set(pid_a, 300, None, False, OWNER, 100)

        # 50 for the first 100s, then 75 per 100s
        assert farm.pending_tokens(pid_a, "alice", 200).pending_reward == 125 * E18

    def test_pool_added_later_starts_at_its_add_time(self, farm, lp_a, lp_b):
        farm.add(100, lp_a, None, OWNER, 0)
        pid_b = farm.add(100, lp_b, None, OWNER, 40)

        assert farm.get_pool(pid_b).last_reward_time == 40

    def test_start_timestamp_in_future_delays_accrual(self, hum, escrow, lp_a):
        farm = MasterFarm(owner=OWNER)
        farm.initialize(hum, escrow, E18, 1000, 100, 0, OWNER)
        hum.mint(farm.address, 10 ** 30)
        pid = farm.add(100, lp_a, None, OWNER, 0)
        lp_a.mint("alice", E18)
        farm.deposit(pid, "alice", E18, 10)

        assert farm.pending_tokens(pid, "alice", 100).pending_reward == 0
        assert farm.pending_tokens(pid, "alice", 150).pending_reward == 50 * E18


class TestClaims:
    """Harvesting and payout."""

    def test_claim_pays_and_is_idempotent(self, farm, hum, lp_a):
        pid = farm.add(100, lp_a, None, OWNER, 0)
        lp_a.mint("alice", E18)
        farm.deposit(pid, "alice", E18, 0)

        assert farm.claim(pid, "alice", 100) == 100 * E18
        assert farm.claim(pid, "alice", 100) == 0
        assert hum.balance_of("alice") == 100 * E18
        assert farm.get_position(pid, "alice").claimed == 100 * E18

    def test_deposit_and_withdraw_harvest(self, farm, hum, lp_a):
        pid = farm.add(100, lp_a, None, OWNER, 0)
        lp_a.mint("alice", 2 * E18)
        farm.deposit(pid, "alice", E18, 0)

        assert farm.deposit(pid, "alice", E18, 10) == 10 * E18
        assert farm.withdraw(pid, "alice", 2 * E18, 20) == 10 * E18
        assert lp_a.balance_of("alice") == 2 * E18
        assert farm.pool_total_staked(pid) == 0
        assert hum.balance_of("alice") == 20 * E18

    def test_multi_claim(self, farm, lp_a, lp_b):
        pid_a = farm.add(100, lp_a, None, OWNER, 0)
        pid_b = farm.add(300, lp_b, None, OWNER, 0)
        lp_a.mint("alice", E18)
        lp_b.mint("alice", E18)
        farm.deposit(pid_a, "alice", E18, 0)
        farm.deposit(pid_b, "alice", E18, 0)

        total, amounts = farm.multi_claim([pid_a, pid_b], "alice", 100)

        assert amounts == [25 * E18, 75 * E18]
        assert total == 100 * E18

    def test_payout_capped_at_farm_balance(self, hum, escrow, lp_a):
        farm = make_farm(hum, escrow, funding=10 * E18)
        pid = farm.add(100, lp_a, None, OWNER, 0)
        lp_a.mint("alice", E18)
        farm.deposit(pid, "alice", E18, 0)

        assert farm.claim(pid, "alice", 100) == 10 * E18
        assert farm.get_position(pid, "alice").claimable_units == 90 * E18

        hum.mint(farm.address, 90 * E18)
        assert farm.claim(pid, "alice", 100) == 90 * E18

    def test_rounding_never_pays_more_than_emitted(self, farm, lp_a):
        pid = farm.add(100, lp_a, None, OWNER, 0)
        stakes = {"alice": 333, "bob": 777, "carol": 1001}
        for account, amount in stakes.items():
            lp_a.mint(account, amount)
        farm.deposit(pid, "alice", 333, 0)
        farm.deposit(pid, "bob", 777, 7)
        farm.claim(pid, "alice", 13)
        farm.deposit(pid, "carol", 1001, 29)
        farm.withdraw(pid, "bob", 500, 31)
        farm.claim(pid, "carol", 47)

        pool = farm.update_pool(pid, 97)
        claimed = sum(farm.get_position(pid, account).claimed for account in stakes)
        pending = sum(farm.pending_tokens(pid, account, 97).pending_reward for account in stakes)

        assert claimed + pending <= pool.total_emitted
        assert pool.total_staked == sum(farm.get_position(pid, account).amount for account in stakes)

    def test_boosted_stream_never_pays_more_than_emitted(self, hum, escrow, lp_a):
        farm = make_farm(hum, escrow, diluting_repartition=375)
        pid = farm.add(100, lp_a, None, OWNER, 0)
        stakes = {"alice": 333, "bob": 777, "carol": 1001}
        for account, amount in stakes.items():
            lp_a.mint(account, amount)

        lock_for(escrow, "alice", 500)
        farm.deposit(pid, "alice", 333, 0)
        farm.deposit(pid, "bob", 777, 7)
        farm.claim(pid, "alice", 13)
        lock_for(escrow, "carol", 2000, now=20)
        farm.deposit(pid, "carol", 1001, 29)
        farm.withdraw(pid, "bob", 500, 31)
        lock_for(escrow, "bob", 100, now=40)
        farm.claim(pid, "carol", 47)
        hum.mint("alice", 1000)
        escrow.increase_amount("alice", 1000, 60)
        farm.claim(pid, "bob", 71)

        assert farm.get_position(pid, "alice").factor == 832
        assert farm.get_position(pid, "bob").factor == 100
        assert farm.get_position(pid, "carol").factor == 2000

        pool = farm.update_pool(pid, 97)
        claimed = sum(farm.get_position(pid, account).claimed for account in stakes)
        pending = sum(farm.pending_tokens(pid, account, 97).pending_reward for account in stakes)

        assert 0 < pool.total_emitted <= 97 * E18
        assert claimed + pending <= pool.total_emitted
        assert pool.sum_of_factors == sum(farm.get_position(pid, account).factor for account in stakes)


class TestEmergencyAndPause:

    def test_emergency_withdraw_forfeits_rewards(self, farm, hum, lp_a):
        pid = farm.add(100, lp_a, None, OWNER, 0)
        lp_a.mint("alice", E18)
        farm.deposit(pid, "alice", E18, 0)

        assert farm.emergency_withdraw(pid, "alice", 100) == E18
        assert lp_a.balance_of("alice") == E18
        assert farm.get_position(pid, "alice").claimable == 0
        assert farm.claim(pid, "alice", 200) == 0
        assert hum.balance_of("alice") == 0

    def test_paused_farm_blocks_staking_but_not_emergency_withdraw(self, farm, lp_a):
        pid = farm.add(100, lp_a, None, OWNER, 0)
        lp_a.mint("alice", 2 * E18)
        farm.deposit(pid, "alice", E18, 0)
        farm.pause(OWNER)

        with pytest.raises(FarmPaused):
            farm.deposit(pid, "alice", E18, 10)
        assert farm.emergency_withdraw(pid, "alice", 10) == E18

        farm.unpause(OWNER)
        farm.deposit(pid, "alice", E18, 20)
        assert farm.pool_total_staked(pid) == E18


class TestAdministration:

    def test_set_without_overwrite_keeps_rewarder(self, farm, bonus, lp_a):
        first = Rewarder(bonus, lp_a, E18, farm, is_native=False)
        second = Rewarder(bonus, lp_a, E18, farm, is_native=False, address="second")
        pid = farm.add(100, lp_a, first, OWNER, 0)

        farm.set(pid, 50, second, False, OWNER, 10)
        assert farm.get_pool(pid).rewarder is first
        assert farm.get_pool(pid).base_alloc_point == 50

        farm.set(pid, 50, second, True, OWNER, 20)
        assert farm.get_pool(pid).rewarder is second

        farm.set(pid, 50, None, True, OWNER, 30)
        assert farm.get_pool(pid).rewarder is None

    def test_set_requires_explicit_overwrite_flag(self, farm, lp_a):
        pid = farm.add(100, lp_a, None, OWNER, 0)
        with pytest.raises(InvalidParameter):
            farm.set(pid, 50, None, None, OWNER, 10)

    def test_total_alloc_point_tracks_pool_weights(self, farm, lp_a, lp_b):
        pid_a = farm.add(100, lp_a, None, OWNER, 0)
        pid_b = farm.add(200, lp_b, None, OWNER, 0)
        farm.set(pid_a, 0, None, False, OWNER, 10)
        farm.set_voter("voter", OWNER)
        farm.set_vote_points(pid_b, 500, "voter", 20)

        pools = [farm.get_pool(pid) for pid in range(farm.pool_length())]
        assert farm.total_alloc_point == sum(pool.alloc_point for pool in pools) == 700

    def test_duplicate_pool_rejected(self, farm, lp_a):
        farm.add(100, lp_a, None, OWNER, 0)
        with pytest.raises(DuplicatePool):
            farm.add(100, lp_a, None, OWNER, 0)
        assert farm.pool_length() == 1

    def test_initialize_only_once(self, farm, hum, escrow):
        with pytest.raises(AlreadyInitialized):
            farm.initialize(hum, escrow, E18, 1000, 0, 0, OWNER)

    def test_operations_require_initialization(self, escrow, lp_a):
        farm = MasterFarm(owner=OWNER)
        with pytest.raises(NotInitialized):
            farm.add(100, lp_a, None, OWNER, 0)

    def test_admin_operations_require_owner(self, farm, lp_a):
        with pytest.raises(Unauthorized):
            farm.add(100, lp_a, None, "mallory", 0)
        with pytest.raises(Unauthorized):
            farm.update_emission_rate(0, "mallory", 0)
        with pytest.raises(Unauthorized):
            farm.set_vote_points(0, 10, "mallory", 0)

    def test_ownership_transfer(self, farm, lp_a):
        farm.transfer_ownership("new-owner", OWNER)
        with pytest.raises(Unauthorized):
            farm.add(100, lp_a, None, OWNER, 0)
        farm.add(100, lp_a, None, "new-owner", 0)

    def test_unknown_pool(self, farm):
        with pytest.raises(PoolNotFound):
            farm.get_pool(3)
        with pytest.raises(PoolNotFound):
            farm.pid_of("LP-X")

    def test_invalid_repartition_rejected(self, farm):
        with pytest.raises(InvalidParameter):
            farm.update_emission_repartition(1001, OWNER, 0)


class TestFailures:
    """A failed operation leaves no partial effects."""

    def test_withdraw_more_than_staked(self, farm, lp_a):
        pid = farm.add(100, lp_a, None, OWNER, 0)
        lp_a.mint("alice", E18)
        farm.deposit(pid, "alice", E18, 0)

        with pytest.raises(InsufficientBalance):
            farm.withdraw(pid, "alice", 2 * E18, 50)

        assert farm.get_pool(pid).last_reward_time == 0
        assert farm.get_position(pid, "alice").amount == E18

    def test_deposit_without_tokens(self, farm, lp_a):
        pid = farm.add(100, lp_a, None, OWNER, 0)

        with pytest.raises(InsufficientBalance):
            farm.deposit(pid, "alice", E18, 10)

        assert farm.pool_total_staked(pid) == 0
        assert farm.get_pool(pid).last_reward_time == 0
