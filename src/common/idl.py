from __future__ import annotations

import hashlib
import json
import re
import struct
from importlib import resources
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError

from .keys import PublicKey


DISCRIMINATOR_SIZE = 8

# IDL type descriptor: a primitive name ("u64", "string", ...) or a dict such
# as {"vec": <type>}, {"option": <type>}, {"defined": "Name"}.
IdlType = Union[str, Dict[str, Any]]


class IdlError(ValueError):
    """Malformed interface definition or value not matching it."""


class IdlField(BaseModel):
    name: str
    type: IdlType


class IdlTypeDef(BaseModel):
    kind: str = "struct"
    fields: List[IdlField] = Field(default_factory=list)


class IdlNamedType(BaseModel):
    name: str
    type: IdlTypeDef


class IdlAccountItem(BaseModel):
    name: str
    isMut: bool = False
    isSigner: bool = False


class IdlInstruction(BaseModel):
    name: str
    accounts: List[IdlAccountItem] = Field(default_factory=list)
    args: List[IdlField] = Field(default_factory=list)


class IdlMetadata(BaseModel):
    address: str


class Idl(BaseModel):
    """
    Anchor interface definition (legacy JSON layout).

    Only the parts the client needs are modelled: instructions with their
    account lists and args, account layouts, shared struct types and the
    deployed program address.
    """

    version: str = "0.0.0"
    name: str
    instructions: List[IdlInstruction]
    accounts: List[IdlNamedType] = Field(default_factory=list)
    types: List[IdlNamedType] = Field(default_factory=list)
    metadata: IdlMetadata

    @property
    def program_id(self) -> PublicKey:
        return PublicKey.from_string(self.metadata.address)

    def instruction(self, name: str) -> IdlInstruction:
        for ix in self.instructions:
            if ix.name == name:
                return ix
        raise IdlError(f"Instruction not in IDL: {name}")

    def account(self, name: str) -> IdlNamedType:
        for acc in self.accounts:
            if acc.name == name:
                return acc
        raise IdlError(f"Account not in IDL: {name}")

    def _defined(self, name: str) -> IdlTypeDef:
        for t in list(self.types) + list(self.accounts):
            if t.name == name:
                return t.type
        raise IdlError(f"Type not in IDL: {name}")

    # --------------- Instruction encoding ---------------
    def encode_instruction(self, name: str, args: Dict[str, Any]) -> bytes:
        ix = self.instruction(name)
        out = bytearray(instruction_discriminator(ix.name))
        for arg in ix.args:
            if arg.name not in args:
                raise IdlError(f"Missing argument {arg.name!r} for {name}")
            self._encode(arg.type, args[arg.name], out)
        return bytes(out)

    def _encode(self, t: IdlType, value: Any, out: bytearray) -> None:
        if isinstance(t, str):
            if t in _INT_FORMATS:
                out += struct.pack(_INT_FORMATS[t], int(value))
            elif t == "bool":
                out += b"\x01" if value else b"\x00"
            elif t == "string":
                data = str(value).encode("utf-8")
                out += struct.pack("<I", len(data)) + data
            elif t == "publicKey":
                pk = value if isinstance(value, PublicKey) else PublicKey.from_string(str(value))
                out += pk.to_bytes()
            else:
                raise IdlError(f"Unsupported IDL type: {t}")
            return
        if "vec" in t:
            items = list(value)
            out += struct.pack("<I", len(items))
            for item in items:
                self._encode(t["vec"], item, out)
        elif "option" in t:
            if value is None:
                out += b"\x00"
            else:
                out += b"\x01"
                self._encode(t["option"], value, out)
        elif "defined" in t:
            for f in self._defined(t["defined"]).fields:
                self._encode(f.type, value[f.name], out)
        else:
            raise IdlError(f"Unsupported IDL type: {t}")

    # --------------- Account decoding ---------------
    def decode_account(self, name: str, data: bytes) -> Dict[str, Any]:
        """
        Decode raw account data for account `name`.

        Checks the 8-byte account discriminator, then Borsh-decodes the struct.
        Bytes past the end of the struct are ignored (accounts are allocated
        with fixed space and zero padded).
        """
        acc = self.account(name)
        if len(data) < DISCRIMINATOR_SIZE:
            raise IdlError("Account data shorter than discriminator")
        if data[:DISCRIMINATOR_SIZE] != account_discriminator(acc.name):
            raise IdlError(f"Account discriminator mismatch for {name}")
        try:
            value, _ = self._decode_struct(acc.type, data, DISCRIMINATOR_SIZE)
        except (struct.error, UnicodeDecodeError, IndexError) as exc:
            raise IdlError(f"Failed to decode {name}: {exc}") from exc
        return value

    def _decode_struct(self, td: IdlTypeDef, data: bytes, offset: int) -> Tuple[Dict[str, Any], int]:
        out: Dict[str, Any] = {}
        for f in td.fields:
            out[f.name], offset = self._decode(f.type, data, offset)
        return out, offset

    def _decode(self, t: IdlType, data: bytes, offset: int) -> Tuple[Any, int]:
        if isinstance(t, str):
            if t in _INT_FORMATS:
                fmt = _INT_FORMATS[t]
                (v,) = struct.unpack_from(fmt, data, offset)
                return v, offset + struct.calcsize(fmt)
            if t == "bool":
                return data[offset] != 0, offset + 1
            if t == "string":
                (n,) = struct.unpack_from("<I", data, offset)
                offset += 4
                if offset + n > len(data):
                    raise IndexError("string runs past end of account data")
                return data[offset:offset + n].decode("utf-8"), offset + n
            if t == "publicKey":
                raw = data[offset:offset + 32]
                if len(raw) != 32:
                    raise IndexError("public key runs past end of account data")
                return PublicKey(raw), offset + 32
            raise IdlError(f"Unsupported IDL type: {t}")
        if "vec" in t:
            (n,) = struct.unpack_from("<I", data, offset)
            offset += 4
            items: List[Any] = []
            for _ in range(n):
                item, offset = self._decode(t["vec"], data, offset)
                items.append(item)
            return items, offset
        if "option" in t:
            flag = data[offset]
            offset += 1
            if flag == 0:
                return None, offset
            return self._decode(t["option"], data, offset)
        if "defined" in t:
            return self._decode_struct(self._defined(t["defined"]), data, offset)
        raise IdlError(f"Unsupported IDL type: {t}")


_INT_FORMATS = {
    "u8": "<B",
    "i8": "<b",
    "u16": "<H",
    "i16": "<h",
    "u32": "<I",
    "i32": "<i",
    "u64": "<Q",
    "i64": "<q",
}

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def snake_case(name: str) -> str:
    return _CAMEL_RE.sub("_", name).lower()


def _sighash(namespace: str, name: str) -> bytes:
    return hashlib.sha256(f"{namespace}:{name}".encode("utf-8")).digest()[:DISCRIMINATOR_SIZE]


def instruction_discriminator(name: str) -> bytes:
    """Anchor instruction selector: sha256("global:<snake_name>")[:8]."""
    return _sighash("global", snake_case(name))


def account_discriminator(name: str) -> bytes:
    """Anchor account tag: sha256("account:<AccountName>")[:8]."""
    return _sighash("account", name)


def parse_idl(raw: Dict[str, Any]) -> Idl:
    try:
        idl = Idl.model_validate(raw)
    except ValidationError as ve:
        raise IdlError(f"Malformed IDL: {ve}") from ve
    # Surface a bad program address at load time rather than on first call
    try:
        idl.program_id
    except ValueError as exc:
        raise IdlError(f"Malformed IDL program address: {exc}") from exc
    return idl


def load_idl(path: Optional[str] = None) -> Idl:
    """Load an IDL file, defaulting to the one shipped with the package."""
    if path is None:
        text = resources.files("common").joinpath("idl.json").read_text(encoding="utf-8")
    else:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise IdlError(f"IDL is not valid JSON: {exc}") from exc
    return parse_idl(raw)


__all__ = [
    "Idl",
    "IdlError",
    "IdlInstruction",
    "IdlAccountItem",
    "instruction_discriminator",
    "account_discriminator",
    "snake_case",
    "parse_idl",
    "load_idl",
]
