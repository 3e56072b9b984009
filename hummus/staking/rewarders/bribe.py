"""
Bribes: side incentives paid to the voters of one gauge.
"""

import logging

from hummus.staking.core.errors import Unauthorized
from hummus.staking.core.transaction import atomic
from hummus.staking.rewarders.base import RewardStream

logger = logging.getLogger(__name__)


class Bribe(RewardStream):
    """
    Reward stream whose share basis is the votes cast on one gauge.

    ``on_vote`` only settles and records the new vote. Payment happens on
    ``claim``/``claim_many`` so a rejected native transfer can never block a
    vote or an epoch rollover that touches many voters.
    """

    def __init__(
        self,
        voter,
        lp_token,
        reward_token,
        token_per_sec: int,
        is_native: bool,
        owner: str = None,
        address: str = None,
        start_timestamp: int = 0,
    ):
        voter_address = getattr(voter, "address", voter)
        super().__init__(
            reward_token=reward_token,
            token_per_sec=token_per_sec,
            is_native=is_native,
            owner=owner or voter_address,
            address=address or f"bribe:{getattr(lp_token, 'address', lp_token)}",
            start_timestamp=start_timestamp,
        )
        self.voter = voter_address
        self.lp_token = lp_token

    def on_vote(self, account: str, new_votes: int, now: int, caller: str):
        if caller != self.voter:
            raise Unauthorized(f"{caller} is not the voter of {self.address}")
        with atomic(*self._participants()):
            share = self._settle(account, now)
            self._set_share(share, new_votes)
        logger.debug(f"{self.address}: {account} now has {new_votes} votes")
