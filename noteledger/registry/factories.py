"""
Factory registry: versioned (epoch, category, id) → note-registry factory.

Factory ids use the same packing as proof types:

    packed = epoch * 256**2 + category * 256 + id

category is the commitment system (1 for the only one defined here) and id
is the asset type, which encodes the feature set a registry gets:

    id = (2 if can_adjust_supply else 0) + (1 if can_convert else 0)

So (1, 1, 1) provisions fixed-supply convertible assets and (1, 1, 2)
adjustable-supply, non-convertible ones. Registration is first-write-wins,
like the validator registry.
"""

import logging
import threading
from typing import Dict, List, NamedTuple, Optional, Tuple

from noteledger.core.exceptions import (
    FactoryAlreadyRegistered,
    OperationNotPermitted,
    UnknownFactory,
)
from noteledger.core.models import pack_triple, unpack_triple
from noteledger.ledger.audit import AuditLedger
from noteledger.ledger.public import PublicTokenLedger
from noteledger.registry.notes import NoteRegistry


logger = logging.getLogger(__name__)


DEFAULT_CRYPTO_SYSTEM = 1


def asset_type(can_adjust_supply: bool, can_convert: bool) -> int:
    return (2 if can_adjust_supply else 0) + (1 if can_convert else 0)


class FactoryId(NamedTuple):
    epoch:    int
    category: int
    id:       int

    @property
    def packed(self) -> int:
        return pack_triple(self.epoch, self.category, self.id)

    @classmethod
    def from_packed(cls, value: int) -> "FactoryId":
        return cls(*unpack_triple(value))

    @property
    def can_adjust_supply(self) -> bool:
        return bool(self.id & 2)

    @property
    def can_convert(self) -> bool:
        return bool(self.id & 1)


class NoteRegistryFactory:
    """Provisions NoteRegistry instances with one supply model."""

    adjustable_supply = False

    def create(
        self,
        factory_id:    FactoryId,
        asset_id:      str,
        owner:         bytes,
        public_ledger: Optional[PublicTokenLedger] = None,
        audit:         Optional[AuditLedger] = None,
        mint_counter:  Optional[bytes] = None,
    ) -> NoteRegistry:
        if factory_id.can_adjust_supply != self.adjustable_supply:
            raise OperationNotPermitted(
                f"{type(self).__name__} cannot provision this asset type",
                {"factory_id": tuple(factory_id)},
            )
        if factory_id.can_convert and public_ledger is None:
            raise OperationNotPermitted(
                "convertible asset needs a public token ledger",
                {"asset_id": asset_id},
            )
        return NoteRegistry(
            asset_id=          asset_id,
            owner=             owner,
            can_adjust_supply= self.adjustable_supply,
            can_convert=       factory_id.can_convert,
            public_ledger=     public_ledger,
            audit=             audit,
            mint_counter=      mint_counter if self.adjustable_supply else None,
            factory_id=        factory_id.packed,
        )


class BaseFactory(NoteRegistryFactory):
    """Fixed total supply: value only enters by conversion."""
    adjustable_supply = False


class AdjustableFactory(NoteRegistryFactory):
    """Adjustable total supply: the asset owner may mint."""
    adjustable_supply = True


FACTORY_KINDS = {
    "base":       BaseFactory,
    "adjustable": AdjustableFactory,
}


class FactoryRegistry:

    def __init__(self) -> None:
        self._factories: Dict[FactoryId, NoteRegistryFactory] = {}
        self._lock = threading.Lock()

    def register(self, factory_id: FactoryId, factory: NoteRegistryFactory) -> None:
        factory_id = FactoryId(*factory_id)
        pack_triple(*factory_id)  # ValueError outside 0..255
        with self._lock:
            current = self._factories.get(factory_id)
            if current is factory:
                return
            if current is not None:
                raise FactoryAlreadyRegistered(
                    "factory id already bound to a different factory",
                    {"factory_id": tuple(factory_id)},
                )
            self._factories[factory_id] = factory
        logger.debug("registered %s at %s", type(factory).__name__, tuple(factory_id))

    def resolve(self, factory_id: FactoryId) -> NoteRegistryFactory:
        factory = self._factories.get(FactoryId(*factory_id))
        if factory is None:
            raise UnknownFactory(
                "no factory registered", {"factory_id": tuple(factory_id)}
            )
        return factory

    @property
    def latest_epoch(self) -> int:
        return max((f.epoch for f in self._factories), default=0)

    def select(
        self,
        can_adjust_supply: bool,
        can_convert:       bool,
        epoch:             Optional[int] = None,
        category:          int = DEFAULT_CRYPTO_SYSTEM,
    ) -> Tuple[FactoryId, NoteRegistryFactory]:
        factory_id = FactoryId(
            epoch if epoch is not None else self.latest_epoch,
            category,
            asset_type(can_adjust_supply, can_convert),
        )
        return factory_id, self.resolve(factory_id)

    def registered(self) -> List[FactoryId]:
        return sorted(self._factories)
