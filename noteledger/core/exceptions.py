"""
noteledger Exception Hierarchy

All exceptions inherit from NoteLedgerError for easy catching.

Every concrete error carries a `resubmittable` flag: whether the same
settlement, re-proved or re-encoded, can ever succeed. A caller uses it to
decide between "fix and resubmit" and "give up".
"""


class NoteLedgerError(Exception):
    """Base exception for all noteledger errors"""

    resubmittable = False

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message

    @property
    def kind(self) -> str:
        return type(self).__name__


# ── Payload ───────────────────────────────────────────────────

class PayloadError(NoteLedgerError):
    """Raised when a proof payload cannot be decoded or dispatched"""
    pass


class MalformedPayload(PayloadError):
    """Raised when payload structure (lengths, offsets) is inconsistent"""
    resubmittable = True


class UnknownProofType(PayloadError):
    """Raised when no validator is registered for a proof type"""
    resubmittable = True


# ── Verification ──────────────────────────────────────────────

class VerificationError(NoteLedgerError):
    """Raised when a proof fails cryptographic verification"""
    pass


class VerificationFailed(VerificationError):
    """Raised when the validator rejects a proof as mathematically invalid"""
    resubmittable = True


# ── Ledger state ──────────────────────────────────────────────

class LedgerStateError(NoteLedgerError):
    """Raised when a settlement conflicts with note registry state"""
    pass


class NoteNotFound(LedgerStateError):
    """Raised when an input note was never created"""
    resubmittable = True


class NoteAlreadySpent(LedgerStateError):
    """Raised when an input note is already spent (double spend)"""
    resubmittable = False


class NoteCollision(LedgerStateError):
    """Raised when an output note commitment already exists"""
    resubmittable = False


class PublicValueMismatch(LedgerStateError):
    """Raised when a public value movement cannot be reconciled"""
    resubmittable = True


# ── Authorization ─────────────────────────────────────────────

class AuthorizationError(NoteLedgerError):
    """Raised when spend authorization fails"""
    pass


class SignatureMissing(AuthorizationError):
    """Raised when an input note owner has not signed"""
    resubmittable = True


class SignatureInvalid(AuthorizationError):
    """Raised when a signature is invalid, duplicated or unexpected"""
    resubmittable = True


class OperationNotPermitted(AuthorizationError):
    """Raised when a caller or registry may not perform an operation"""
    resubmittable = False


# ── Administration ────────────────────────────────────────────

class RegistryError(NoteLedgerError):
    """Raised when validator or factory registration fails"""
    pass


class ValidatorAlreadyRegistered(RegistryError):
    """Raised when a different validator is bound to a registered proof type"""
    pass


class FactoryAlreadyRegistered(RegistryError):
    """Raised when a different factory is bound to a registered factory id"""
    pass


class UnknownFactory(RegistryError):
    """Raised when no factory is registered for a factory id"""
    resubmittable = True


class AssetAlreadyRegistered(RegistryError):
    """Raised when a note registry already exists for an asset id"""
    pass


class UnknownAsset(RegistryError):
    """Raised when no note registry exists for an asset id"""
    resubmittable = True


class AuditLedgerError(NoteLedgerError):
    """Raised when the audit ledger cannot be written or loaded"""
    pass


class ConfigError(NoteLedgerError):
    """Raised when engine configuration is invalid"""
    pass
