"""
Constants and builders shared by the staking test suites.
"""

from hummus.staking.escrow.vote_escrow import MAX_LOCK_DURATION
from hummus.staking.farm import MasterFarm

E18 = 10 ** 18
OWNER = "owner"


def make_farm(reward_token, escrow, token_per_sec=E18, diluting_repartition=1000, now=0, funding=10 ** 30, **kwargs):
    """An initialized farm holding `funding` reward tokens."""
    farm = MasterFarm(owner=OWNER, **kwargs)
    farm.initialize(reward_token, escrow, token_per_sec, diluting_repartition, 0, now, OWNER)
    if funding:
        reward_token.mint(farm.address, funding)
    return farm


def lock_for(escrow, account, amount, now=0, duration=MAX_LOCK_DURATION):
    """Mint escrow tokens to account and lock them."""
    escrow.token.mint(account, amount)
    return escrow.create_lock(account, amount, now + duration, now)
