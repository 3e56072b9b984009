"""
Side rewarders attached to farm pools or to the escrow.
"""

import logging

from hummus.staking.core.dilution import DEFAULT_MAX_BOOST, VoteEscrowDilution
from hummus.staking.core.errors import Unauthorized
from hummus.staking.core.transaction import atomic
from hummus.staking.events import LockChanged
from hummus.staking.rewarders.base import RewardStream

logger = logging.getLogger(__name__)


class Rewarder(RewardStream):
    """
    Bonus token paid per unit staked in one farm pool.

    The farm calls ``on_reward`` after every stake change with the account's
    new amount and seeds it with the pool's stakes when it is attached, so
    its share basis is always the pool's. Payment is a separate
    ``pay_reward`` call so the farm can decide whether a failed payout fails
    its own operation.
    """

    def __init__(
        self,
        reward_token,
        lp_token,
        token_per_sec: int,
        farm,
        is_native: bool,
        owner: str = None,
        address: str = None,
        start_timestamp: int = 0,
    ):
        farm_address = getattr(farm, "address", farm)
        super().__init__(
            reward_token=reward_token,
            token_per_sec=token_per_sec,
            is_native=is_native,
            owner=owner or farm_address,
            address=address or f"rewarder:{getattr(lp_token, 'address', lp_token)}",
            start_timestamp=start_timestamp,
        )
        self.lp_token = lp_token
        self.farm = farm_address

    def _factor(self, account: str, amount: int, now: int) -> int:
        return 0

    def _require_farm(self, caller: str):
        if caller != self.farm:
            raise Unauthorized(f"{caller} is not the farm of {self.address}")

    def on_reward(self, account: str, new_amount: int, now: int, caller: str):
        """Settle against the previous stake, then record the new one."""
        self._require_farm(caller)
        with atomic(*self._participants()):
            share = self._settle(account, now)
            self._set_share(share, new_amount, self._factor(account, new_amount, now))

    def pay_reward(self, account: str, caller: str) -> int:
        """
        Pay what the balance covers of the amount owed to account.

        Returns:
            Units paid
        """
        self._require_farm(caller)
        with atomic(*self._participants()):
            paid = self._pay(account)
        if paid:
            logger.debug(f"{self.address} paid {paid} to {account}")
        return paid

    def pending_tokens(self, account: str, now: int) -> int:
        return self.pending(account, now)


class VeRewarder(Rewarder):
    """
    Rewarder with the farm's dilution split: part of the bonus is paid per
    staked unit, the rest per boosted factor.
    """

    def __init__(
        self,
        reward_token,
        lp_token,
        farm,
        escrow,
        token_per_sec: int,
        diluting_repartition: int,
        is_native: bool,
        max_boost: int = DEFAULT_MAX_BOOST,
        owner: str = None,
        address: str = None,
        start_timestamp: int = 0,
    ):
        super().__init__(
            reward_token=reward_token,
            lp_token=lp_token,
            token_per_sec=token_per_sec,
            farm=farm,
            is_native=is_native,
            owner=owner,
            address=address or f"verewarder:{getattr(lp_token, 'address', lp_token)}",
            start_timestamp=start_timestamp,
        )
        self.dilution = VoteEscrowDilution(escrow, diluting_repartition, max_boost)
        self.diluting_repartition = self.dilution.diluting_repartition
        self.escrow = escrow
        escrow.events.subscribe(LockChanged, self.on_lock_changed)

    def _factor(self, account: str, amount: int, now: int) -> int:
        return self.dilution.factor_for(account, amount, now)

    def on_lock_changed(self, event: LockChanged):
        """Settle under the old factor, then apply the new escrow balance."""
        share = self.share(event.account)
        if share.amount == 0:
            return
        with atomic(*self._participants()):
            share = self._settle(event.account, event.timestamp)
            self._set_share(
                share,
                share.amount,
                self.dilution.boosted_share(share.amount, event.new_balance),
            )


class EscrowRewarder(RewardStream):
    """
    Reward paid per unit of escrow balance.

    The share basis is the balance reported by the latest ``LockChanged``
    for the account, refreshed on every claim.
    """

    def __init__(
        self,
        reward_token,
        escrow,
        token_per_sec: int,
        is_native: bool,
        owner: str = None,
        address: str = None,
        start_timestamp: int = 0,
    ):
        super().__init__(
            reward_token=reward_token,
            token_per_sec=token_per_sec,
            is_native=is_native,
            owner=owner or escrow.address,
            address=address or f"escrow-rewarder:{escrow.address}",
            start_timestamp=start_timestamp,
        )
        self.escrow = escrow
        escrow.events.subscribe(LockChanged, self.on_lock_changed)

    def on_lock_changed(self, event: LockChanged):
        with atomic(*self._participants()):
            share = self._settle(event.account, event.timestamp)
            self._set_share(share, event.new_balance)

    def _before_claim(self, account: str, now: int):
        share = self._settle(account, now)
        self._set_share(share, self.escrow.balance_of(account, now))
