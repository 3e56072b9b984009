"""
Integration tests for FarmSystem.
"""

import pytest

from hummus.staking.escrow.vote_escrow import MAX_LOCK_DURATION
from hummus.staking.system import FarmSystem
from hummus.staking.tokens import Token
from tests.staking.helpers import E18


@pytest.fixture
def system():
    system = FarmSystem({"token_per_sec": E18, "diluting_repartition": 1000, "decaying_escrow": False})
    system.initialize(0)
    system.fund_farm(10 ** 30, 0)
    return system


class TestFarmSystem:

    def test_stake_and_claim(self, system):
        lp = Token("LP-A")
        pid = system.add_pool(lp, 100, 0)
        lp.mint("alice", E18)
        system.deposit(pid, "alice", E18, 0)

        assert system.pending(pid, "alice", 100).pending_reward == 100 * E18
        assert system.claim(pid, "alice", 100) == 100 * E18
        assert system.reward_token.balance_of("alice") == 100 * E18

        kinds = [event["kind"] for event in system.journal()]
        assert kinds == ["initialize", "fund", "add_pool", "deposit", "claim"]

    def test_votes_steer_pool_weights(self, system):
        lp_a = Token("LP-A")
        lp_b = Token("LP-B")
        system.add_pool(lp_a, 100, 0)
        system.add_pool(lp_b, 100, 0)
        system.reward_token.mint("alice", 10 * E18)
        system.lock("alice", 10 * E18, MAX_LOCK_DURATION, 0)

        system.vote("alice", {lp_a: 10 * E18}, 10)
        points = system.distribute(20)

        assert points == {"LP-A": 1000, "LP-B": 0}
        assert system.farm.get_pool(0).alloc_point == 1100
        assert system.journal(kind="vote")[0]["account"] == "alice"

    def test_bribe(self, system):
        lp = Token("LP-A")
        system.add_pool(lp, 100, 0)
        reward = Token("BRIBE")
        bribe = system.add_bribe(lp, reward, E18, 0)
        reward.mint("sponsor", 100 * E18)
        bribe.fund("sponsor", 100 * E18)
        system.reward_token.mint("alice", E18)
        system.lock("alice", E18, MAX_LOCK_DURATION, 0)

        system.vote("alice", {lp: E18}, 0)

        assert bribe.claim("alice", 50) == 50 * E18

    def test_save_and_load(self, system):
        lp = Token("LP-A")
        pid = system.add_pool(lp, 100, 0)
        lp.mint("alice", E18)
        system.deposit(pid, "alice", E18, 0)
        system.reward_token.mint("alice", E18)
        system.lock("alice", E18, MAX_LOCK_DURATION, 0)
        system.vote("alice", {lp: E18}, 10)
        system.save()

        restored = FarmSystem(system.config, reward_token=system.reward_token, store=system.store)
        restored.register_token(lp)
        assert restored.load()

        assert restored.pending(pid, "alice", 100) == system.pending(pid, "alice", 100)
        assert restored.escrow.balance_of("alice", 100) == E18
        assert restored.voter.allocation("alice", lp) == E18

    def test_status(self, system):
        system.add_pool(Token("LP-A"), 100, 0)
        status = system.status(0)

        assert status["pools"] == 1
        assert status["total_alloc_point"] == 100
        assert status["farm_balance"] == 10 ** 30
        assert status["phase"] == "open"

    def test_from_config(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HUMMUS_MAX_BOOST", "2000")

        system = FarmSystem.from_config({"vote_alloc_points": 500})

        assert system.farm.dilution.max_boost == 2000
        assert system.voter.vote_alloc_points == 500
