"""
Independently funded reward streams.

A stream emits ``token_per_sec`` of its reward token over a share basis it
keeps itself (staked amounts for rewarders, votes for bribes, escrow
balances for the escrow rewarder). Funding never fails because a stream is
under-funded: payouts are capped at the stream's balance and whatever
cannot be paid stays owed to the account.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Tuple

from hummus.staking.core.accumulator import RewardAccumulator, accrued, advance
from hummus.staking.core.errors import (
    InsufficientFunds,
    InvalidParameter,
    TransferFailed,
    Unauthorized,
)
from hummus.staking.core.fixed_point import (
    ACC_SCALE,
    REPARTITION_PRECISION,
    checked,
    checked_add,
    checked_sub,
)
from hummus.staking.core.transaction import Transactional, atomic

logger = logging.getLogger(__name__)


@dataclass
class StreamShare:
    """An account's share of a reward stream."""

    account: str
    amount: int = 0
    factor: int = 0
    reward_debt: int = 0
    owed: int = 0
    paid: int = 0

    @property
    def owed_units(self) -> int:
        return self.owed // ACC_SCALE


class RewardStream(Transactional):
    """Base class of rewarders and bribes."""

    _transactional_fields = ("accumulator", "shares", "total_shares", "total_factors", "total_paid")

    def __init__(
        self,
        reward_token,
        token_per_sec: int,
        is_native: bool,
        owner: str,
        address: str,
        diluting_repartition: int = REPARTITION_PRECISION,
        start_timestamp: int = 0,
    ):
        if bool(is_native) != bool(reward_token.is_native):
            raise InvalidParameter(
                f"is_native={is_native} does not match reward token {reward_token!r}"
            )
        self.reward_token = reward_token
        self.owner = owner
        self.address = address
        self.diluting_repartition = diluting_repartition
        self.accumulator = RewardAccumulator(
            token_per_sec=checked(token_per_sec, "token per sec"),
            is_native=is_native,
            last_reward_time=start_timestamp,
        )
        self.shares: Dict[str, StreamShare] = {}
        self.total_shares = 0
        self.total_factors = 0
        self.total_paid = 0

    def __repr__(self):
        return f"{type(self).__name__}({self.address!r})"

    def _participants(self):
        return (self, self.reward_token)

    @property
    def is_native(self) -> bool:
        return self.accumulator.is_native

    @property
    def token_per_sec(self) -> int:
        return self.accumulator.token_per_sec

    def balance(self) -> int:
        return self.reward_token.balance_of(self.address)

    def share(self, account: str) -> StreamShare:
        return self.shares.get(account) or StreamShare(account=account)

    def _require_owner(self, caller: str):
        if caller != self.owner:
            raise Unauthorized(f"{caller} is not the owner of {self.address}")

    def _update(self, now: int):
        self.accumulator, _ = advance(
            self.accumulator, now, self.total_shares, self.total_factors, self.diluting_repartition
        )

    def _entitled(self, share: StreamShare, accumulator: RewardAccumulator) -> int:
        return accrued(
            share.amount,
            share.factor,
            accumulator.acc_token_per_share,
            accumulator.acc_token_per_factor_share,
        )

    def _settle(self, account: str, now: int) -> StreamShare:
        self._update(now)
        share = self.share(account)
        entitled = self._entitled(share, self.accumulator)
        pending = checked_sub(entitled, share.reward_debt, "stream pending")
        share = replace(share, reward_debt=entitled, owed=checked_add(share.owed, pending, "stream owed"))
        self.shares[account] = share
        return share

    def _set_share(self, share: StreamShare, amount: int, factor: int = 0) -> StreamShare:
        self.total_shares = checked(self.total_shares - share.amount + amount, "stream total shares")
        self.total_factors = checked(self.total_factors - share.factor + factor, "stream total factors")
        share = replace(share, amount=amount, factor=factor)
        share = replace(share, reward_debt=self._entitled(share, self.accumulator))
        self.shares[share.account] = share
        return share

    def _pay(self, account: str, strict: bool = False) -> int:
        """
        Pay as much of the owed amount as the balance allows.

        Args:
            strict: Raise InsufficientFunds when something is owed and
                nothing can be paid
        """
        share = self.share(account)
        units = share.owed_units
        if units == 0:
            return 0
        amount = min(units, self.balance())
        if amount == 0:
            if strict:
                raise InsufficientFunds(f"{self.address} cannot pay {units} owed to {account}")
            logger.warning(f"{self.address} is empty, {units} stays owed to {account}")
            return 0
        if amount < units:
            logger.warning(f"{self.address} under-funded: paying {amount} of {units} owed to {account}")

        self.reward_token.transfer(self.address, account, amount)
        self.shares[account] = replace(
            share,
            owed=share.owed - amount * ACC_SCALE,
            paid=checked_add(share.paid, amount, "stream paid"),
        )
        self.total_paid = checked_add(self.total_paid, amount, "stream total paid")
        return amount

    def pending(self, account: str, now: int) -> int:
        """Units owed to an account at now, whether or not the balance covers them."""
        accumulator, _ = advance(
            self.accumulator, now, self.total_shares, self.total_factors, self.diluting_repartition
        )
        share = self.share(account)
        pending = self._entitled(share, accumulator) - share.reward_debt
        return (share.owed + pending) // ACC_SCALE

    def fund(self, funder: str, amount: int):
        """Move reward tokens from funder into the stream."""
        with atomic(*self._participants()):
            self.reward_token.transfer(funder, self.address, amount)
        logger.info(f"{funder} funded {self.address} with {amount} {self.reward_token.symbol}")

    def set_reward_rate(self, token_per_sec: int, caller: str, now: int):
        self._require_owner(caller)
        with atomic(*self._participants()):
            self._update(now)
            old_rate = self.accumulator.token_per_sec
            self.accumulator = replace(
                self.accumulator, token_per_sec=checked(token_per_sec, "token per sec")
            )
        logger.info(f"{self.address} rate {old_rate} -> {token_per_sec} per second")

    def emergency_withdraw(self, caller: str) -> int:
        """Send the whole balance back to the owner."""
        self._require_owner(caller)
        amount = self.balance()
        with atomic(*self._participants()):
            self.reward_token.transfer(self.address, self.owner, amount)
        logger.warning(f"Emergency withdrawal of {amount} from {self.address}")
        return amount

    def claim(self, account: str, now: int) -> int:
        """
        Settle and pay an account.

        Raises InsufficientFunds if something is owed and the stream is empty.
        """
        with atomic(*self._participants()):
            self._before_claim(account, now)
            self._settle(account, now)
            return self._pay(account, strict=True)

    def _before_claim(self, account: str, now: int):
        pass

    def claim_many(self, accounts: Iterable[str], now: int) -> Tuple[Dict[str, int], Dict[str, str]]:
        """
        Claim for several accounts; one failing account never blocks the rest.

        Returns:
            (paid, failed) mapping accounts to amounts paid and to error messages
        """
        paid: Dict[str, int] = {}
        failed: Dict[str, str] = {}
        for account in accounts:
            try:
                paid[account] = self.claim(account, now)
            except (TransferFailed, InsufficientFunds) as e:
                logger.warning(f"Claim from {self.address} failed for {account}: {e}")
                failed[account] = str(e)
        return paid, failed
