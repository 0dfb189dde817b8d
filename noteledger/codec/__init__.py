"""
noteledger Proof Codec

Deterministic big-endian, word-aligned payload encoding for every proof
family. Decoding validates structure before any cryptographic work.
"""

from noteledger.codec.abi import (
    ProofCodec,
    compute_offsets,
    decode,
    encode,
    encode_hex,
)

__all__ = ["ProofCodec", "compute_offsets", "decode", "encode", "encode_hex"]
