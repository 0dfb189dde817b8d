"""
In-process public token ledger.

Stands in for the public-token collaborator that confidential value is
converted into and out of. Accounts are opaque byte strings; balances are
non-negative integers.
"""

import hashlib
import logging
import threading
from typing import Dict, Tuple

from noteledger.core.exceptions import PublicValueMismatch


logger = logging.getLogger(__name__)


def escrow_account(asset_id: str) -> bytes:
    """Account holding the public tokens backing an asset's notes."""
    return hashlib.sha3_256(f"noteledger-escrow:{asset_id}".encode()).digest()


class PublicTokenLedger:
    """Thread-safe balance map with all-or-nothing transfers."""

    def __init__(self, symbol: str = "TOKEN") -> None:
        self.symbol      = symbol
        self._balances:   Dict[bytes, int] = {}
        self._allowances: Dict[Tuple[bytes, bytes], int] = {}
        self._lock       = threading.Lock()

    def balance_of(self, account: bytes) -> int:
        return self._balances.get(bytes(account), 0)

    def credit(self, account: bytes, amount: int) -> None:
        """Issue public tokens to an account."""
        if amount <= 0:
            raise PublicValueMismatch("credit amount must be positive", {"amount": amount})
        with self._lock:
            key = bytes(account)
            self._balances[key] = self._balances.get(key, 0) + amount

    def transfer(self, sender: bytes, recipient: bytes, amount: int) -> None:
        """
        Move amount from sender to recipient.

        Raises PublicValueMismatch and changes nothing if the amount is not
        positive or the sender cannot cover it.
        """
        sender, recipient = bytes(sender), bytes(recipient)
        with self._lock:
            self._move(sender, recipient, amount)
        logger.debug("%s transfer %d %s", self.symbol, amount, recipient.hex()[:16])

    def approve(self, owner: bytes, spender: bytes, amount: int) -> None:
        """Set how much spender may pull from owner with transfer_from()."""
        if amount < 0:
            raise PublicValueMismatch("allowance cannot be negative", {"amount": amount})
        with self._lock:
            self._allowances[(bytes(owner), bytes(spender))] = amount

    def allowance(self, owner: bytes, spender: bytes) -> int:
        return self._allowances.get((bytes(owner), bytes(spender)), 0)

    def transfer_from(self, owner: bytes, spender: bytes, amount: int) -> None:
        """Pull amount from owner into spender, consuming owner's allowance."""
        key = (bytes(owner), bytes(spender))
        with self._lock:
            allowed = self._allowances.get(key, 0)
            if allowed < amount:
                raise PublicValueMismatch(
                    "allowance does not cover the transfer",
                    {"account": key[0].hex()[:16], "allowance": allowed, "amount": amount},
                )
            self._move(key[0], key[1], amount)
            self._allowances[key] = allowed - amount
        logger.debug("%s transfer_from %d %s", self.symbol, amount, key[0].hex()[:16])

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {
                account.hex(): bal
                for account, bal in sorted(self._balances.items()) if bal
            }

    def _move(self, sender: bytes, recipient: bytes, amount: int) -> None:
        # caller holds self._lock
        if amount <= 0:
            raise PublicValueMismatch("transfer amount must be positive", {"amount": amount})
        available = self._balances.get(sender, 0)
        if available < amount:
            raise PublicValueMismatch(
                "insufficient public balance",
                {"account": sender.hex()[:16], "balance": available, "amount": amount},
            )
        self._balances[sender] = available - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
