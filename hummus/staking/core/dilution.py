"""
Vote-escrow dilution for the boosted reward stream.

Each pool reward is split in two. The diluting part is paid per staked
unit. The boosted part is paid per factor unit, where an account's factor
is its stake scaled by its escrow-to-stake ratio, capped at ``max_boost``.
"""

import logging
from fractions import Fraction
from typing import Dict, Tuple

from hummus.staking.core.accumulator import split_reward
from hummus.staking.core.errors import InvalidParameter
from hummus.staking.core.fixed_point import BOOST_PRECISION, REPARTITION_PRECISION, checked
from hummus.staking.core.transaction import Transactional

logger = logging.getLogger(__name__)

# 375/1000 of emissions paid per staked unit, the rest boosted
DEFAULT_DILUTING_REPARTITION = 375

# Maximum boost factor in parts per 1000 (2.5x)
DEFAULT_MAX_BOOST = 2500


def validate_repartition(diluting_repartition: int) -> int:
    if not 0 <= diluting_repartition <= REPARTITION_PRECISION:
        raise InvalidParameter(
            f"diluting repartition must be within 0..{REPARTITION_PRECISION}, got {diluting_repartition}"
        )
    return diluting_repartition


class VoteEscrowDilution(Transactional):
    """
    Computes boosted share bases from escrow balances.

    The escrow is only read here; lock changes reach the farm as events.
    """

    _transactional_fields = ("diluting_repartition", "max_boost")

    def __init__(
        self,
        escrow=None,
        diluting_repartition: int = DEFAULT_DILUTING_REPARTITION,
        max_boost: int = DEFAULT_MAX_BOOST,
    ):
        """
        Args:
            escrow: Object exposing balance_of(account, now), or None
            diluting_repartition: Diluting share in parts per 1000
            max_boost: Boost cap in parts per 1000
        """
        if max_boost < 0:
            raise InvalidParameter(f"max boost must be non-negative, got {max_boost}")
        self.escrow = escrow
        self.diluting_repartition = validate_repartition(diluting_repartition)
        self.max_boost = max_boost

    @property
    def non_diluting_repartition(self) -> int:
        return REPARTITION_PRECISION - self.diluting_repartition

    def split(self, reward: int) -> Tuple[int, int]:
        return split_reward(reward, self.diluting_repartition)

    def boost_factor(self, amount: int, escrow_balance: int) -> Fraction:
        """min(max_boost, escrow_balance / amount) as an exact ratio."""
        cap = Fraction(self.max_boost, BOOST_PRECISION)
        if amount == 0:
            return Fraction(0)
        return min(cap, Fraction(escrow_balance, amount))

    def boosted_share(self, amount: int, escrow_balance: int) -> int:
        """
        amount * boost_factor, rounded down.

        Equal to min(amount * max_boost, escrow_balance), so it never exceeds
        the cap however large the escrow balance is.
        """
        if amount == 0:
            return 0
        capped = amount * self.max_boost // BOOST_PRECISION
        return checked(min(capped, escrow_balance), "boosted share")

    def escrow_balance(self, account: str, now: int) -> int:
        if self.escrow is None:
            return 0
        return self.escrow.balance_of(account, now)

    def factor_for(self, account: str, amount: int, now: int) -> int:
        """Current boosted share of an account holding amount."""
        factor = self.boosted_share(amount, self.escrow_balance(account, now))
        logger.debug(f"Factor for {account}: amount={amount}, factor={factor}")
        return factor

    def update_repartition(self, diluting_repartition: int):
        self.diluting_repartition = validate_repartition(diluting_repartition)
        logger.info(f"Diluting repartition set to {diluting_repartition}/{REPARTITION_PRECISION}")

    def describe(self) -> Dict[str, int]:
        """Current dilution parameters for display."""
        return {
            "diluting_repartition": self.diluting_repartition,
            "non_diluting_repartition": self.non_diluting_repartition,
            "max_boost": self.max_boost,
        }
