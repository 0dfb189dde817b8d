"""
Spend authorization for join-split settlements.

Binding message:
    JCS({"context": <settlement context>, "proof_type": <int>, "payload": <hex>})

The context names the engine (or registry) the payload is settled against,
so a signature collected for one settlement context is useless in another.

Rules, all fail-closed:
    - exactly one signature per DISTINCT input-note owner, and from the
      public owner when a join-split deposits public value
    - signatures are unordered (signer, signature) pairs
    - a second signature for an already satisfied owner   → SignatureInvalid
    - a signer that owns no input note                    → SignatureInvalid
    - a signature that does not verify                    → SignatureInvalid
    - any owner left unsatisfied                          → SignatureMissing
"""

from typing import Iterable, List, NamedTuple, Sequence, Union

from noteledger.core.canonical import canonicalize
from noteledger.core.crypto import Ed25519Key, owner_bytes
from noteledger.core.exceptions import AuthorizationError, SignatureInvalid, SignatureMissing
from noteledger.core.models import ZERO_WORD, ProofType


class SpendSignature(NamedTuple):
    signer:    Union[bytes, str]
    signature: str


def binding_message(context: str, proof_type: ProofType, payload: bytes) -> bytes:
    return canonicalize({
        "context":    context,
        "proof_type": ProofType.parse(proof_type),
        "payload":    bytes(payload),
    })


def construct_signatures(
    keys:       Iterable[Ed25519Key],
    context:    str,
    proof_type: ProofType,
    payload:    bytes,
) -> List[SpendSignature]:
    """One signature per key over the binding message."""
    message = binding_message(context, proof_type, payload)
    return [SpendSignature(key.owner, key.sign(message)) for key in keys]


def check_spend_authorization(
    spenders:   Iterable[bytes],
    message:    bytes,
    signatures: Sequence[SpendSignature],
) -> None:
    """Raise unless every distinct spender signed message exactly once."""
    required = {bytes(s) for s in spenders}
    if ZERO_WORD in required:
        raise SignatureMissing("note has no owner able to sign")

    satisfied = set()
    for index, entry in enumerate(signatures):
        try:
            signer = owner_bytes(entry.signer)
        except (TypeError, ValueError) as exc:
            raise SignatureInvalid(
                "signer is not a public key", {"index": index}
            ) from exc
        if signer not in required:
            raise SignatureInvalid(
                "signer is not a required spender",
                {"index": index, "signer": signer.hex()[:16]},
            )
        if signer in satisfied:
            raise SignatureInvalid(
                "duplicate signature for the same owner",
                {"index": index, "signer": signer.hex()[:16]},
            )
        if not Ed25519Key.verify_detached(message, entry.signature, signer):
            raise SignatureInvalid(
                "signature does not verify",
                {"index": index, "signer": signer.hex()[:16]},
            )
        satisfied.add(signer)

    missing = required - satisfied
    if missing:
        raise SignatureMissing(
            "required spenders have not signed",
            {"missing": sorted(m.hex()[:16] for m in missing)},
        )


def verify_signatures(
    spenders:   Iterable[bytes],
    message:    bytes,
    signatures: Sequence[SpendSignature],
) -> bool:
    """Boolean form of check_spend_authorization()."""
    try:
        check_spend_authorization(spenders, message, signatures)
    except AuthorizationError:
        return False
    return True
