"""
noteledger/core/crypto.py

Ed25519 key handling for note owners and the audit signer.

A note owner IS an Ed25519 public key: the 32 raw key bytes fill one
payload word exactly, so the owner word carried in proof data, the key a
spend signature is checked against, and the registry's owner field are the
same value.

Key contracts:
    owner                   : @property → 32 raw public key bytes
    owner_hex               : @property → 64-char lowercase hex
    sign(data)              : bytes → base64url str, no padding
    verify_detached(...)    : @staticmethod, verifies with ONLY an owner key
"""

import base64
from pathlib import Path
from typing import Union

from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)


OwnerKey = Union[bytes, str]


def owner_bytes(owner: OwnerKey) -> bytes:
    """
    Normalise an owner given as raw bytes or hex (with or without 0x,
    any letter case) to 32 raw bytes. Shorter values are left padded,
    the way a 20-byte address sits right-aligned in a word.
    """
    if isinstance(owner, str):
        text = owner[2:] if owner[:2] in ("0x", "0X") else owner
        if len(text) % 2:
            text = "0" + text
        owner = bytes.fromhex(text)
    if len(owner) > 32:
        raise ValueError(f"owner key must fit in 32 bytes, got {len(owner)}")
    return owner.rjust(32, b"\x00")


class Ed25519Key:
    """
    Ed25519 signing key for a note owner or the audit ledger.

    Public surface:
        Ed25519Key.generate()                          → new random key
        Ed25519Key.from_file(path)                     → load PEM private key
        Ed25519Key.from_seed(seed)                     → load from 32-byte seed
        Ed25519Key.verify_detached(data, sig, owner)   → @staticmethod

        key.owner / key.owner_hex   (@property)
        key.sign(data: bytes)       → base64url str (no padding)
        key.save(path)              → write PEM private key
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key: Ed25519PrivateKey = private_key
        self._public_key:  Ed25519PublicKey  = private_key.public_key()
        self._owner:       bytes             = self._public_key.public_bytes(
            Encoding.Raw, PublicFormat.Raw
        )

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls) -> "Ed25519Key":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> "Ed25519Key":
        """
        Deterministic key from a raw 32-byte seed.
        Raises ValueError if seed is not exactly 32 bytes.
        """
        if len(seed) != 32:
            raise ValueError(f"Ed25519 seed must be 32 bytes, got {len(seed)}")
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def from_file(cls, path: Path) -> "Ed25519Key":
        """
        Load an Ed25519 private key from a PEM file.
        Raises FileNotFoundError if path does not exist.
        Raises ValueError if the file is not a valid Ed25519 PEM key.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Key file not found: {path}")
        try:
            private_key = load_pem_private_key(path.read_bytes(), password=None)
        except Exception as exc:
            raise ValueError(
                f"Failed to load Ed25519 key from {path}: {exc}"
            ) from exc
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError(
                f"Key file {path} does not contain an Ed25519 private key"
            )
        return cls(private_key)

    @classmethod
    def load_or_create(cls, path: Path) -> "Ed25519Key":
        """Load the key at path, generating and saving one if it is missing."""
        path = Path(path)
        if path.exists():
            return cls.from_file(path)
        key = cls.generate()
        key.save(path)
        return key

    # ── Public Key ────────────────────────────────────────────

    @property
    def owner(self) -> bytes:
        """Raw 32-byte public key; the value stored as a note owner."""
        return self._owner

    @property
    def owner_hex(self) -> str:
        return self._owner.hex()

    # ── Signing ───────────────────────────────────────────────

    def sign(self, data: bytes) -> str:
        """
        Sign data with Ed25519. Returns base64url string, no '=' padding.
        Caller is responsible for canonicalization.
        """
        raw_sig = self._private_key.sign(data)
        return base64.urlsafe_b64encode(raw_sig).rstrip(b"=").decode("ascii")

    # ── Verification ──────────────────────────────────────────

    @staticmethod
    def verify_detached(data: bytes, signature_b64: str, owner: OwnerKey) -> bool:
        """
        Verify an Ed25519 signature using ONLY the signer's public key.

        Returns:
            True if the signature is valid over data for owner.
            False for ANY failure: wrong key, bad encoding, wrong length,
            corrupted signature, the all-zero owner. Never raises.
        """
        try:
            raw_pub = owner_bytes(owner)
            if raw_pub == b"\x00" * 32:
                return False
            pub = Ed25519PublicKey.from_public_bytes(raw_pub)

            # Re-add base64url padding if stripped
            padding    = 4 - len(signature_b64) % 4
            padded_sig = signature_b64 + "=" * (padding % 4)
            raw_sig    = base64.urlsafe_b64decode(padded_sig)

            if len(raw_sig) != 64:
                return False

            pub.verify(raw_sig, data)
            return True

        except Exception:
            return False

    # ── Persistence ───────────────────────────────────────────

    def save(self, path: Path) -> None:
        """
        Write the private key to disk as a PEM file.
        Creates parent directories if needed.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        pem = self._private_key.private_bytes(
            encoding=             Encoding.PEM,
            format=               PrivateFormat.PKCS8,
            encryption_algorithm= NoEncryption(),
        )
        path.write_bytes(pem)

    def __repr__(self) -> str:
        return f"Ed25519Key(owner={self.owner_hex[:16]}...)"
