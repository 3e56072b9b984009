"""
Shared fixtures for the staking test suites.
"""

import pytest

from hummus.staking.escrow.vote_escrow import VoteEscrow
from hummus.staking.tokens import NativeAsset, Token
from tests.staking.helpers import make_farm


@pytest.fixture
def hum():
    return Token("HUM")


@pytest.fixture
def lp_a():
    return Token("LP-A")


@pytest.fixture
def lp_b():
    return Token("LP-B")


@pytest.fixture
def bonus():
    return Token("BONUS")


@pytest.fixture
def metis():
    return NativeAsset("METIS")


@pytest.fixture
def escrow(hum):
    """Escrow whose balance stays constant until unlock."""
    return VoteEscrow(hum, decaying=False)


@pytest.fixture
def decaying_escrow(hum):
    return VoteEscrow(hum, decaying=True)


@pytest.fixture
def farm(hum, escrow):
    return make_farm(hum, escrow)
