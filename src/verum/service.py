"""
Attestation service: issues, persists and re-derives signed receipts.

``AttestationConfig`` is built once at the configuration boundary and passed
in; the service itself holds no global state beyond its collaborators.
"""
from __future__ import annotations

import logging
import re
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict, SecretStr

from .errors import AlreadyAnchored, InvalidHash
from .receipts.fingerprint import (
    MISSING,
    digest_bytes,
    digest_pack,
    list_pack_files,
    reference_digest,
)
from .receipts.keys import KeyEncoding, resolve_key_encoding
from .receipts.models import FileDigest, Receipt
from .receipts.sign import SigningAuthority
from .receipts.store import FileReceiptStore, MemoryReceiptStore, ReceiptStore
from .settings import Settings

log = logging.getLogger(__name__)

HASH_RE = re.compile(r"^[0-9a-f]{64,}$")
TXID_LENGTH = 64
LOCK_STRIPES = 64
REGENERATED_NOTE = "Receipt regenerated - no anchor found"

AnchorPolicy = Literal["first-wins", "reject", "overwrite"]


class AttestationConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    signing_key: SecretStr
    key_encoding: KeyEncoding
    issuer: str = "verum.omnis"
    token_ttl_seconds: int = 3600
    product_id: str = "VO-Web32"
    policy_text: str = ""
    anchor_chain: str = "eth"
    anchor_policy: AnchorPolicy = "first-wins"
    manifest_hash: str = MISSING
    constitution_hash: str = MISSING
    rules: tuple[FileDigest, ...] = ()
    rules_pack_hash: str = digest_bytes(b"")


def load_config(s: Settings) -> AttestationConfig:
    """Fingerprint the reference artifacts and freeze the runtime configuration."""
    key_text = s.signing_key.get_secret_value()
    assets = s.assets_dir
    timeout = s.fingerprint_timeout_seconds
    rules = digest_pack(list_pack_files(assets / s.rules_dir), timeout=timeout)
    cfg = AttestationConfig(
        signing_key=s.signing_key,
        key_encoding=resolve_key_encoding(key_text, s.key_encoding),
        issuer=s.issuer,
        token_ttl_seconds=s.token_ttl_seconds,
        product_id=s.product_id,
        policy_text=s.policy_text,
        anchor_chain=s.anchor_chain,
        anchor_policy=s.anchor_policy,
        manifest_hash=reference_digest(assets / s.model_pack_file, timeout),
        constitution_hash=reference_digest(assets / s.constitution_file, timeout),
        rules=rules.items,
        rules_pack_hash=rules.digest,
    )
    log.info(
        "reference digests loaded: constitution=%s model_pack=%s rules=%d (%s)",
        cfg.constitution_hash[:16], cfg.manifest_hash[:16], len(cfg.rules), cfg.rules_pack_hash[:16],
    )
    return cfg


def build_store(s: Settings) -> ReceiptStore:
    if s.store_backend == "memory":
        return MemoryReceiptStore()
    return FileReceiptStore(s.receipts_dir)


def normalize_hash(value: Any) -> str:
    """Lower-case ``value`` and check it is a hex digest of at least 256 bits."""
    if not isinstance(value, str):
        raise InvalidHash("hash must be a string")
    h = value.strip().lower()
    if not HASH_RE.match(h):
        raise InvalidHash("hash must be at least 64 hexadecimal characters")
    return h


def iso_now(clock: Callable[[], datetime] | None = None) -> str:
    now = clock() if clock else datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def compute_txid(hash: str, issued_at: str) -> str:
    return digest_bytes(hash + issued_at)[:TXID_LENGTH]


class AttestationService:
    def __init__(
        self,
        config: AttestationConfig,
        store: ReceiptStore,
        authority: SigningAuthority | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config
        self.store = store
        self.authority = authority or SigningAuthority(
            config.signing_key.get_secret_value(),
            config.key_encoding,
            issuer=config.issuer,
            ttl_seconds=config.token_ttl_seconds,
        )
        self._clock = clock
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, hash: str) -> threading.Lock:
        # hashes are validated hex, so the prefix spreads evenly over stripes
        return self._locks[int(hash[:8], 16) % LOCK_STRIPES]

    def _receipt(self, hash: str, chain: str | None, txid: str | None, issued_at: str,
                 note: str | None = None) -> Receipt:
        body: dict[str, Any] = {
            "hash": hash,
            "chain": chain,
            "txid": txid,
            "manifestHash": self.config.manifest_hash,
            "constitutionHash": self.config.constitution_hash,
            "product": self.config.product_id,
            "issuedAt": issued_at,
        }
        if note is not None:
            body["note"] = note
        return Receipt(**body, signature=self.authority.sign(body))

    def issue_anchor(self, hash: Any) -> Receipt:
        """Issue, sign and persist a receipt for ``hash``.

        Repeat anchors follow ``config.anchor_policy``: ``first-wins`` returns
        the stored receipt, ``reject`` raises ``AlreadyAnchored`` and
        ``overwrite`` replaces it with a new receipt (new ``txid``/``issuedAt``).
        """
        h = normalize_hash(hash)
        policy = self.config.anchor_policy
        with self._lock_for(h):
            if policy != "overwrite":
                existing = self.store.get(h)
                if existing is not None:
                    if policy == "reject":
                        raise AlreadyAnchored(f"hash {h[:16]} is already anchored")
                    log.info("anchor for %s already exists; returning stored receipt", h[:16])
                    return existing
            issued_at = iso_now(self._clock)
            receipt = self._receipt(h, self.config.anchor_chain, compute_txid(h, issued_at), issued_at)
            if policy == "overwrite":
                self.store.put(h, receipt)
                stored = receipt
            else:
                stored = self.store.put_if_absent(h, receipt)
                if stored is not receipt and policy == "reject":
                    raise AlreadyAnchored(f"hash {h[:16]} is already anchored")
        log.info("anchored %s txid=%s", h[:16], (stored.txid or "")[:16])
        return stored

    def get_or_regenerate_receipt(self, hash: Any) -> Receipt:
        """Stored receipt for ``hash``, or a fresh unanchored one that is not persisted."""
        h = normalize_hash(hash)
        stored = self.store.get(h)
        if stored is not None:
            return stored
        log.info("no anchor for %s; regenerating unanchored receipt", h[:16])
        return self._receipt(h, None, None, iso_now(self._clock), note=REGENERATED_NOTE)

    def lookup(self, hash: Any) -> Receipt | None:
        return self.store.get(normalize_hash(hash))

    def sign(self, payload: dict[str, Any]) -> str:
        return self.authority.sign(payload)

    def reference_statement(self) -> dict[str, Any]:
        """Signed statement of the reference digests and usage policy."""
        body = {
            "constitutionHash": self.config.constitution_hash,
            "modelPackHash": self.config.manifest_hash,
            "policy": self.config.policy_text,
            "product": self.config.product_id,
            "timestamp": iso_now(self._clock),
        }
        return {**body, "signature": self.authority.sign(body)}

    def rules_statement(self) -> dict[str, Any]:
        body = {
            "product": self.config.product_id,
            "rules": [r.model_dump() for r in self.config.rules],
            "rulesPackHash": self.config.rules_pack_hash,
            "issuedAt": iso_now(self._clock),
        }
        return {**body, "signature": self.authority.sign(body)}
