from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FileDigest(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    size: int = Field(ge=0)
    digest: str = Field(pattern=r"^[0-9a-f]{128}$")


class PackDigest(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: tuple[FileDigest, ...] = ()
    digest: str


class Receipt(BaseModel):
    """Signed record binding a content hash to the reference pack digests.

    Field names follow the JSON wire form consumed by existing verifiers.
    """
    model_config = ConfigDict(frozen=True)

    hash: str
    chain: str | None = None
    txid: str | None = None
    manifestHash: str
    constitutionHash: str
    product: str
    issuedAt: str  # ISO-8601, UTC, millisecond precision
    note: str | None = None
    signature: str

    def body(self) -> dict[str, Any]:
        """Signed claims, in wire order, without the signature."""
        out: dict[str, Any] = {
            "hash": self.hash,
            "chain": self.chain,
            "txid": self.txid,
            "manifestHash": self.manifestHash,
            "constitutionHash": self.constitutionHash,
            "product": self.product,
            "issuedAt": self.issuedAt,
        }
        if self.note is not None:
            out["note"] = self.note
        return out

    def to_wire(self) -> dict[str, Any]:
        return {**self.body(), "signature": self.signature}
