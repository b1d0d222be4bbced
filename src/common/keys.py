from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, List

import base58
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat


PUBLIC_KEY_LENGTH = 32
SECRET_KEY_LENGTH = 64


class PublicKey:
    """
    Immutable 32-byte Solana address.

    The canonical string form is base58, which is what the wallet session
    stores and what gets compared everywhere above the transaction layer.
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: bytes) -> None:
        raw = bytes(raw)
        if len(raw) != PUBLIC_KEY_LENGTH:
            raise ValueError(f"Invalid public key length: {len(raw)}")
        self._raw = raw

    @classmethod
    def from_string(cls, value: str) -> "PublicKey":
        if not value:
            raise ValueError("Public key cannot be empty")
        try:
            raw = base58.b58decode(value)
        except ValueError as exc:
            raise ValueError(f"Public key is not valid base58: {value!r}") from exc
        return cls(raw)

    def to_bytes(self) -> bytes:
        return self._raw

    def __bytes__(self) -> bytes:
        return self._raw

    def __str__(self) -> str:
        return base58.b58encode(self._raw).decode("ascii")

    def __repr__(self) -> str:
        return f"PublicKey({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PublicKey):
            return False
        return self._raw == other._raw

    def __hash__(self) -> int:
        return hash(self._raw)


SYSTEM_PROGRAM_ID = PublicKey(bytes(PUBLIC_KEY_LENGTH))


class Keypair:
    """Ed25519 key pair backed by `cryptography`."""

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private = private_key
        raw_pub = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self._public = PublicKey(raw_pub)

    @classmethod
    def generate(cls) -> "Keypair":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        return cls(Ed25519PrivateKey.from_private_bytes(bytes(seed)))

    @classmethod
    def from_secret_key(cls, secret: bytes) -> "Keypair":
        """
        Build from a Solana 64-byte secret key (seed followed by public key).

        Raises ValueError when the trailing public half does not match the seed.
        """
        secret = bytes(secret)
        if len(secret) != SECRET_KEY_LENGTH:
            raise ValueError(f"Secret key must be {SECRET_KEY_LENGTH} bytes, got {len(secret)}")
        kp = cls.from_seed(secret[:PUBLIC_KEY_LENGTH])
        if kp.public_key.to_bytes() != secret[PUBLIC_KEY_LENGTH:]:
            raise ValueError("Secret key public half does not match its seed")
        return kp

    @property
    def public_key(self) -> PublicKey:
        return self._public

    @property
    def secret_key(self) -> bytes:
        seed = self._private.private_bytes_raw()
        return seed + self._public.to_bytes()

    def sign(self, message: bytes) -> bytes:
        return self._private.sign(message)


def _secret_from_json(raw: Any) -> List[int]:
    # Plain `solana-keygen` output: [n, n, ...]
    if isinstance(raw, list):
        return [int(v) for v in raw]
    # Browser export form: {"_keypair": {"publicKey": {...}, "secretKey": {"0": n, ...}}}
    if isinstance(raw, dict):
        inner = raw.get("_keypair", raw)
        secret = inner.get("secretKey") if isinstance(inner, dict) else None
        if isinstance(secret, dict):
            return [int(secret[k]) for k in sorted(secret, key=int)]
        if isinstance(secret, list):
            return [int(v) for v in secret]
    raise ValueError("Unrecognized keypair file layout")


def load_keypair(path: os.PathLike[str] | str) -> Keypair:
    """Load the deployment key pair from a JSON keypair file."""
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Cannot read keypair file {p}: {exc}") from exc
    return Keypair.from_secret_key(bytes(_secret_from_json(raw)))


__all__ = [
    "PublicKey",
    "Keypair",
    "SYSTEM_PROGRAM_ID",
    "load_keypair",
]
