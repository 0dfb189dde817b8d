"""
noteledger/config.py

Engine configuration, loaded from YAML or a plain dict.

    context: "noteledger-demo"
    validators: transparent
    proof_types: [MINT, JOIN_SPLIT, PRIVATE_RANGE, SWAP, DIVIDEND]
    factories:
      - {epoch: 1, category: 1, id: 1, kind: base}
      - {epoch: 1, category: 1, id: 2, kind: adjustable}
    audit:
      path: ".noteledger/audit.jsonl"
      key_path: ".noteledger/audit.pem"

Every key is optional. Anything unknown raises ConfigError at load time,
never later at settlement time.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from noteledger.core.crypto import Ed25519Key
from noteledger.core.exceptions import ConfigError
from noteledger.core.models import ProofType, pack_triple
from noteledger.ledger.audit import AuditLedger
from noteledger.registry.factories import FACTORY_KINDS, FactoryId
from noteledger.settlement.engine import SettlementEngine
from noteledger.verification.transparent import ZERO_COUNTER_NOTE, transparent_validators


VALIDATOR_FAMILIES = ("transparent",)

DEFAULT_FACTORIES = (
    {"epoch": 1, "category": 1, "id": 0, "kind": "base"},
    {"epoch": 1, "category": 1, "id": 1, "kind": "base"},
    {"epoch": 1, "category": 1, "id": 2, "kind": "adjustable"},
    {"epoch": 1, "category": 1, "id": 3, "kind": "adjustable"},
)

_TOP_LEVEL_KEYS = {"context", "validators", "proof_types", "factories", "audit"}


@dataclass(frozen=True)
class FactorySpec:
    epoch:    int
    category: int
    id:       int
    kind:     str


@dataclass
class EngineConfig:
    context:        str                = "noteledger"
    validators:     str                = "transparent"
    proof_types:    List[ProofType]    = field(default_factory=lambda: list(ProofType))
    factories:      List[FactorySpec]  = field(
        default_factory=lambda: [FactorySpec(**f) for f in DEFAULT_FACTORIES]
    )
    audit_path:     Optional[Path]     = None
    audit_key_path: Optional[Path]     = None
    audit_enabled:  bool               = False

    @classmethod
    def from_yaml(cls, config_file: Path) -> "EngineConfig":
        """Load configuration from a YAML file."""
        try:
            with open(config_file, "r") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config: {e}", {"path": str(config_file)}) from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}", {"path": str(config_file)}) from e
        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        if not isinstance(data, dict):
            raise ConfigError("config must be a mapping", {"type": type(data).__name__})
        unknown = set(data) - _TOP_LEVEL_KEYS
        if unknown:
            raise ConfigError("unknown config keys", {"keys": sorted(unknown)})

        family = data.get("validators", "transparent")
        if family not in VALIDATOR_FAMILIES:
            raise ConfigError("unknown validator family", {"validators": family})

        proof_types = [_proof_type(p) for p in data.get("proof_types", list(ProofType))]
        factories   = [_factory(f) for f in data.get("factories", DEFAULT_FACTORIES)]

        audit = data.get("audit")
        if audit is not None and not isinstance(audit, dict):
            raise ConfigError("audit must be a mapping")
        audit = audit or {}
        extra = set(audit) - {"path", "key_path"}
        if extra:
            raise ConfigError("unknown audit keys", {"keys": sorted(extra)})

        return cls(
            context=        str(data.get("context", "noteledger")),
            validators=     family,
            proof_types=    proof_types,
            factories=      factories,
            audit_path=     Path(audit["path"]) if audit.get("path") else None,
            audit_key_path= Path(audit["key_path"]) if audit.get("key_path") else None,
            audit_enabled=  "audit" in data,
        )


def _proof_type(value: Any) -> ProofType:
    try:
        return ProofType.parse(value)
    except ValueError as e:
        raise ConfigError("unknown proof type", {"proof_type": value}) from e


def _factory(entry: Any) -> FactorySpec:
    if not isinstance(entry, dict):
        raise ConfigError("factory entry must be a mapping", {"entry": entry})
    try:
        spec = FactorySpec(
            epoch=    int(entry["epoch"]),
            category= int(entry.get("category", 1)),
            id=       int(entry["id"]),
            kind=     str(entry["kind"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"invalid factory entry: {e}", {"entry": entry}) from e

    factory_cls = FACTORY_KINDS.get(spec.kind)
    if factory_cls is None:
        raise ConfigError("unknown factory kind", {"kind": spec.kind})
    factory_id = FactoryId(spec.epoch, spec.category, spec.id)
    try:
        pack_triple(*factory_id)
    except ValueError as e:
        raise ConfigError(str(e), {"entry": entry}) from e
    if factory_id.can_adjust_supply != factory_cls.adjustable_supply:
        raise ConfigError(
            "factory kind does not match the asset type of its id",
            {"kind": spec.kind, "id": spec.id},
        )
    return spec


def build_engine(config: Optional[EngineConfig] = None) -> SettlementEngine:
    """Wire validators, factories and the audit ledger into a SettlementEngine."""
    config = config or EngineConfig()

    audit = None
    if config.audit_enabled or config.audit_path or config.audit_key_path:
        if config.audit_key_path:
            key = Ed25519Key.load_or_create(config.audit_key_path)
        else:
            key = Ed25519Key.generate()
        audit = AuditLedger(key, config.audit_path)

    engine = SettlementEngine(
        context=           config.context,
        audit=             audit,
        zero_counter_note= ZERO_COUNTER_NOTE,
    )

    validators = transparent_validators()
    for proof_type in config.proof_types:
        engine.register_validator(proof_type, validators[proof_type])

    kinds = {kind: factory_cls() for kind, factory_cls in FACTORY_KINDS.items()}
    for spec in config.factories:
        engine.register_factory(FactoryId(spec.epoch, spec.category, spec.id), kinds[spec.kind])

    return engine
