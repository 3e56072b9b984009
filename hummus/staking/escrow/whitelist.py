"""
Whitelist of contract accounts allowed to lock in the escrow.

Externally owned accounts always pass; accounts registered as contracts
must be approved by the owner.
"""

import logging
from typing import Set

from hummus.staking.core.errors import Unauthorized
from hummus.staking.core.transaction import Transactional, atomic

logger = logging.getLogger(__name__)


class Whitelist(Transactional):
    _transactional_fields = ("contracts", "approved")

    def __init__(self, owner: str):
        self.owner = owner
        self.contracts: Set[str] = set()
        self.approved: Set[str] = set()

    def _require_owner(self, caller: str):
        if caller != self.owner:
            raise Unauthorized(f"{caller} is not the whitelist owner")

    def register_contract(self, account: str, caller: str):
        self._require_owner(caller)
        with atomic(self):
            self.contracts.add(account)

    def approve(self, account: str, caller: str):
        self._require_owner(caller)
        with atomic(self):
            self.approved.add(account)
        logger.info(f"Whitelisted {account}")

    def revoke(self, account: str, caller: str):
        self._require_owner(caller)
        with atomic(self):
            self.approved.discard(account)
        logger.info(f"Removed {account} from whitelist")

    def check(self, account: str) -> bool:
        return account not in self.contracts or account in self.approved
