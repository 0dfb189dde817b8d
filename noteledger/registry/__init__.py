"""
noteledger Registries

- ValidatorRegistry: proof type → validator
- FactoryRegistry:   factory id → note-registry factory
- NoteRegistry:      per-asset note store, the double-spend protocol
"""

from noteledger.registry.factories import (
    AdjustableFactory,
    BaseFactory,
    FactoryId,
    FactoryRegistry,
)
from noteledger.registry.notes import NoteRegistry
from noteledger.registry.validators import Validator, ValidatorRegistry

__all__ = [
    "AdjustableFactory",
    "BaseFactory",
    "FactoryId",
    "FactoryRegistry",
    "NoteRegistry",
    "Validator",
    "ValidatorRegistry",
]
