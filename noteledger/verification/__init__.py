from noteledger.verification.transparent import (
    ZERO_COUNTER_NOTE,
    TransparentNote,
    TransparentProver,
    transparent_validators,
)

__all__ = [
    "ZERO_COUNTER_NOTE",
    "TransparentNote",
    "TransparentProver",
    "transparent_validators",
]
