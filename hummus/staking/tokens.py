"""
Token ledgers used by the staking core.

``Token`` is an ERC20-like balance sheet. ``NativeAsset`` models the
chain-native asset: value transfers to a recipient can be rejected, which
is what the ``is_native`` flag of rewarders and bribes has to cope with.
"""

import logging
from typing import Dict, Set

from hummus.staking.core.errors import InsufficientBalance, InvalidParameter, TransferFailed
from hummus.staking.core.fixed_point import checked_add, checked_sub
from hummus.staking.core.transaction import Transactional, atomic

logger = logging.getLogger(__name__)


class Token(Transactional):
    """Balance sheet of a fungible token."""

    is_native = False
    _transactional_fields = ("balances", "total_supply")

    def __init__(self, symbol: str, address: str = None, decimals: int = 18):
        self.symbol = symbol
        self.address = address or symbol
        self.decimals = decimals
        self.balances: Dict[str, int] = {}
        self.total_supply = 0

    def __repr__(self):
        return f"{type(self).__name__}({self.symbol!r})"

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def mint(self, to: str, amount: int):
        if amount < 0:
            raise InvalidParameter(f"Cannot mint a negative amount: {amount}")
        with atomic(self):
            self.total_supply = checked_add(self.total_supply, amount, f"{self.symbol} supply")
            self.balances[to] = checked_add(self.balance_of(to), amount, f"{self.symbol} balance")

    def burn(self, account: str, amount: int):
        with atomic(self):
            self._debit(account, amount)
            self.total_supply = checked_sub(self.total_supply, amount, f"{self.symbol} supply")

    def transfer(self, sender: str, recipient: str, amount: int):
        """Move amount from sender to recipient."""
        if amount < 0:
            raise InvalidParameter(f"Cannot transfer a negative amount: {amount}")
        if amount == 0:
            return
        with atomic(self):
            self._debit(sender, amount)
            self._before_credit(recipient, amount)
            self.balances[recipient] = checked_add(
                self.balance_of(recipient), amount, f"{self.symbol} balance"
            )

    def _debit(self, account: str, amount: int):
        balance = self.balance_of(account)
        if amount > balance:
            raise InsufficientBalance(
                f"{account} holds {balance} {self.symbol}, needs {amount}"
            )
        self.balances[account] = balance - amount

    def _before_credit(self, recipient: str, amount: int):
        pass


class NativeAsset(Token):
    """
    The chain-native asset.

    Recipients registered with ``reject_transfers`` refuse incoming value,
    the way a contract without a payable receive hook would.
    """

    is_native = True

    def __init__(self, symbol: str = "METIS", address: str = None, decimals: int = 18):
        super().__init__(symbol, address, decimals)
        self.rejecting: Set[str] = set()

    def reject_transfers(self, account: str, reject: bool = True):
        if reject:
            self.rejecting.add(account)
        else:
            self.rejecting.discard(account)

    def _before_credit(self, recipient: str, amount: int):
        if recipient in self.rejecting:
            logger.warning(f"Native transfer of {amount} to {recipient} rejected")
            raise TransferFailed(f"{recipient} rejected a native transfer of {amount}")
