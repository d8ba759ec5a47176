"""
Universal Data Identifier (UDI).

A UDI names a store, optionally pinned to a root version, optionally pointing
at a resource inside it. Two textual encodings are understood:

* canonical URN:  ``urn:dig:<chain>:<store_id>[:<root_hash>][/<resource_key>]``
* compact path:   ``<chain>.<store_id>[.<root_hash>]`` (first URL segment)

Both parse into ``IdentifierParts``; only fully valid parts become a ``Udi``.
"""
from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

from core_config.constants import (
    UDI_NID,
    UDI_NAMESPACE,
    VALID_CHAIN_NAMES,
    STORE_ID_LENGTH,
    ROOT_HASH_LENGTH,
)
from core_utils.ids import is_hex_id


def is_store_id(value: Optional[str]) -> bool:
    return is_hex_id(value, STORE_ID_LENGTH)


def is_root_hash(value: Optional[str]) -> bool:
    return is_hex_id(value, ROOT_HASH_LENGTH)


@dataclass(frozen=True)
class IdentifierParts:
    """Loosely parsed identifier fields; any of them may be absent or invalid."""
    chain_name: Optional[str] = None
    store_id: Optional[str] = None
    root_hash: Optional[str] = None

    @property
    def has_store(self) -> bool:
        return is_store_id(self.store_id)


def _clean(value: Optional[str]) -> Optional[str]:
    return value or None


def parse_compact(segment: str) -> IdentifierParts:
    """
    Parse ``chain.store.root``, ``chain.store``, ``store.root`` or ``store``.
    With two parts a 64-character first part is the store, otherwise the chain.
    """
    parts = (segment or "").split(".")
    if len(parts) == 3:
        return IdentifierParts(_clean(parts[0]), _clean(parts[1]), _clean(parts[2]))
    if len(parts) == 2:
        if len(parts[0]) == STORE_ID_LENGTH:
            return IdentifierParts(None, _clean(parts[0]), _clean(parts[1]))
        return IdentifierParts(_clean(parts[0]), _clean(parts[1]), None)
    if len(parts) == 1:
        return IdentifierParts(None, _clean(parts[0]), None)
    return IdentifierParts()


def parse_urn(urn: str) -> Tuple[IdentifierParts, Optional[str]]:
    """
    Split a URN into identifier parts and the resource key (``None`` when the
    URN has no ``/``). Raises ValueError on a foreign namespace or short NSS.
    """
    pieces = urn.split(":", 2)
    if len(pieces) < 3 or pieces[0].lower() != "urn":
        raise ValueError(f"Not a URN: {urn}")
    if pieces[1].lower() != UDI_NID:
        raise ValueError(f"Invalid namespace: {pieces[1]}")
    nss = pieces[2]
    head, sep, key = nss.partition("/")
    fields = head.split(":")
    if len(fields) < 2 or len(fields) > 3:
        raise ValueError(f"Invalid URN format: {nss}")
    root = fields[2] if len(fields) == 3 else None
    return IdentifierParts(_clean(fields[0]), _clean(fields[1]), _clean(root)), (key if sep else None)


def is_urn(text: str) -> bool:
    return (text or "")[:4].lower() == "urn:"


def parse_identifier(text: str) -> Tuple[IdentifierParts, Optional[str]]:
    """Parse either encoding. A malformed URN yields empty parts."""
    if is_urn(text):
        try:
            return parse_urn(text)
        except ValueError:
            return IdentifierParts(), None
    return parse_compact(text), None


class Udi(BaseModel):
    model_config = ConfigDict(frozen=True)

    chain_name: str
    store_id: str
    root_hash: Optional[str] = None
    resource_key: Optional[str] = None

    @field_validator("store_id")
    @classmethod
    def _check_store_id(cls, v: str) -> str:
        if not is_store_id(v):
            raise ValueError(f"store_id must be {STORE_ID_LENGTH} hex characters")
        return v

    @field_validator("chain_name")
    @classmethod
    def _check_chain(cls, v: str) -> str:
        if v not in VALID_CHAIN_NAMES:
            raise ValueError(f"unknown chain: {v!r}")
        return v

    @field_validator("root_hash")
    @classmethod
    def _check_root(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_root_hash(v):
            raise ValueError(f"root_hash must be {ROOT_HASH_LENGTH} hex characters")
        return v

    @classmethod
    def from_parts(cls, parts: IdentifierParts, resource_key: Optional[str] = None) -> "Udi":
        return cls(
            chain_name=parts.chain_name or "",
            store_id=parts.store_id or "",
            root_hash=parts.root_hash,
            resource_key=resource_key,
        )

    @classmethod
    def from_urn(cls, urn: str) -> "Udi":
        parts, key = parse_urn(urn)
        return cls.from_parts(parts, key)

    def to_urn(self) -> str:
        urn = f"{UDI_NAMESPACE}:{self.chain_name}:{self.store_id}"
        if self.root_hash is not None:
            urn += f":{self.root_hash}"
        if self.resource_key is not None:
            urn += f"/{self.resource_key}"
        return urn

    def __str__(self) -> str:
        return self.to_urn()

    def compact(self) -> str:
        """First-segment form used in gateway URLs."""
        out = f"{self.chain_name}.{self.store_id}"
        if self.root_hash is not None:
            out += f".{self.root_hash}"
        return out

    def with_root_hash(self, root_hash: Optional[str]) -> "Udi":
        return Udi(chain_name=self.chain_name, store_id=self.store_id,
                   root_hash=root_hash, resource_key=self.resource_key)

    def with_resource_key(self, resource_key: Optional[str]) -> "Udi":
        return Udi(chain_name=self.chain_name, store_id=self.store_id,
                   root_hash=self.root_hash, resource_key=resource_key)

    @property
    def store_id_base32(self) -> str:
        # Lower-case, unpadded; fits a DNS label
        return base64.b32encode(bytes.fromhex(self.store_id)).decode("ascii").rstrip("=").lower()


__all__ = [
    "Udi",
    "IdentifierParts",
    "parse_compact",
    "parse_urn",
    "parse_identifier",
    "is_urn",
    "is_store_id",
    "is_root_hash",
]
