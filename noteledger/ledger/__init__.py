"""
noteledger Ledgers - audit trail and public token bridge.
"""

from noteledger.ledger.audit import AuditEntry, AuditLedger
from noteledger.ledger.public import PublicTokenLedger, escrow_account

__all__ = ["AuditEntry", "AuditLedger", "PublicTokenLedger", "escrow_account"]
