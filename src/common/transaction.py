from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import base58

from .keys import PublicKey


SIGNATURE_LENGTH = 64


def encode_length(n: int) -> bytes:
    """Solana compact-u16 ("shortvec") length prefix."""
    if n < 0 or n > 0xFFFF:
        raise ValueError(f"Length out of range for compact-u16: {n}")
    out = bytearray()
    while True:
        elem = n & 0x7F
        n >>= 7
        if n == 0:
            out.append(elem)
            return bytes(out)
        out.append(elem | 0x80)


@dataclass(frozen=True)
class AccountMeta:
    pubkey: PublicKey
    is_signer: bool
    is_writable: bool


@dataclass(frozen=True)
class Instruction:
    program_id: PublicKey
    accounts: Sequence[AccountMeta]
    data: bytes


@dataclass
class Message:
    """
    Legacy (non-versioned) transaction message.

    `account_keys` is ordered: writable signers, read-only signers, writable
    non-signers, read-only non-signers. The fee payer is always first.
    """

    num_required_signatures: int
    num_readonly_signed: int
    num_readonly_unsigned: int
    account_keys: List[PublicKey]
    recent_blockhash: str
    instructions: List[Instruction] = field(default_factory=list)

    @property
    def signers(self) -> List[PublicKey]:
        return self.account_keys[: self.num_required_signatures]

    def serialize(self) -> bytes:
        index = {k: i for i, k in enumerate(self.account_keys)}
        blockhash = base58.b58decode(self.recent_blockhash)
        if len(blockhash) != 32:
            raise ValueError("Recent blockhash must decode to 32 bytes")

        out = bytearray(
            [self.num_required_signatures, self.num_readonly_signed, self.num_readonly_unsigned]
        )
        out += encode_length(len(self.account_keys))
        for k in self.account_keys:
            out += k.to_bytes()
        out += blockhash
        out += encode_length(len(self.instructions))
        for ix in self.instructions:
            out.append(index[ix.program_id])
            out += encode_length(len(ix.accounts))
            out += bytes(index[m.pubkey] for m in ix.accounts)
            out += encode_length(len(ix.data))
            out += ix.data
        return bytes(out)


def compile_message(
    payer: PublicKey, instructions: Sequence[Instruction], recent_blockhash: str
) -> Message:
    # Merge duplicate keys keeping first-seen order; flags are OR-ed together
    merged: Dict[PublicKey, List[bool]] = {payer: [True, True]}
    for ix in instructions:
        for m in ix.accounts:
            flags = merged.setdefault(m.pubkey, [False, False])
            flags[0] = flags[0] or m.is_signer
            flags[1] = flags[1] or m.is_writable
        merged.setdefault(ix.program_id, [False, False])

    def group(signer: bool, writable: bool) -> List[PublicKey]:
        return [k for k, (s, w) in merged.items() if s == signer and w == writable]

    writable_signed = group(True, True)
    readonly_signed = group(True, False)
    writable_unsigned = group(False, True)
    readonly_unsigned = group(False, False)

    return Message(
        num_required_signatures=len(writable_signed) + len(readonly_signed),
        num_readonly_signed=len(readonly_signed),
        num_readonly_unsigned=len(readonly_unsigned),
        account_keys=writable_signed + readonly_signed + writable_unsigned + readonly_unsigned,
        recent_blockhash=recent_blockhash,
        instructions=list(instructions),
    )


def serialize_transaction(signatures: Sequence[bytes], message_bytes: bytes) -> bytes:
    for sig in signatures:
        if len(sig) != SIGNATURE_LENGTH:
            raise ValueError(f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(sig)}")
    return encode_length(len(signatures)) + b"".join(signatures) + message_bytes


def encode_wire(tx: bytes) -> str:
    return base64.b64encode(tx).decode("ascii")


__all__ = [
    "AccountMeta",
    "Instruction",
    "Message",
    "compile_message",
    "encode_length",
    "serialize_transaction",
    "encode_wire",
]
