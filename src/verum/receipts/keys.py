"""
Ed25519 key material for the signing authority.

Keys are accepted as a PKCS#8 PEM block or as an OKP JSON Web Key. The
encoding is resolved once when configuration is loaded; the signing path
only ever sees an explicit ``"pem"`` or ``"jwk"``.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Literal

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from nacl.exceptions import CryptoError
from nacl.signing import SigningKey, VerifyKey

from ..errors import KeyMalformed, KeyMissing

KeyEncoding = Literal["pem", "jwk"]

PEM_MARKER = "BEGIN PRIVATE KEY"


def b64url_encode(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    padding = -len(s) % 4
    return base64.urlsafe_b64decode(s + "=" * padding)


def detect_key_encoding(key_text: str) -> KeyEncoding:
    return "pem" if PEM_MARKER in key_text else "jwk"


def resolve_key_encoding(key_text: str, configured: str) -> KeyEncoding:
    if configured == "auto":
        return detect_key_encoding(key_text)
    if configured not in ("pem", "jwk"):
        raise KeyMalformed(f"unknown key encoding {configured!r}")
    return configured  # type: ignore[return-value]


def _from_pem(key_text: str) -> SigningKey:
    try:
        key = serialization.load_pem_private_key(key_text.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyMalformed("signing key is not a readable PEM private key") from exc
    if not isinstance(key, Ed25519PrivateKey):
        raise KeyMalformed("signing key is not an Ed25519 key")
    seed = key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return SigningKey(seed)


def _from_jwk(key_text: str) -> SigningKey:
    try:
        jwk = json.loads(key_text)
    except json.JSONDecodeError as exc:
        raise KeyMalformed("signing key is neither PEM nor JSON") from exc
    if not isinstance(jwk, dict) or jwk.get("kty") != "OKP" or jwk.get("crv") != "Ed25519":
        raise KeyMalformed("JWK must be an OKP key on the Ed25519 curve")
    if not jwk.get("d"):
        raise KeyMalformed("JWK has no private component")
    try:
        sk = SigningKey(b64url_decode(jwk["d"]))
    except (binascii.Error, ValueError, CryptoError) as exc:
        raise KeyMalformed("JWK private component is not a 32-byte Ed25519 seed") from exc
    if jwk.get("x") and b64url_decode(jwk["x"]) != bytes(sk.verify_key):
        raise KeyMalformed("JWK public component does not match its private key")
    return sk


def load_signing_key(key_text: str, encoding: KeyEncoding) -> SigningKey:
    if not key_text or not key_text.strip():
        raise KeyMissing("no signing key configured")
    if encoding == "pem":
        return _from_pem(key_text)
    return _from_jwk(key_text)


def load_verify_key(text: str) -> VerifyKey:
    """Public key from a PEM block, a JWK, or raw base64/base64url bytes."""
    text = text.strip()
    try:
        if text.startswith("-----BEGIN"):
            pub = serialization.load_pem_public_key(text.encode("utf-8"))
            if not isinstance(pub, Ed25519PublicKey):
                raise KeyMalformed("public key is not an Ed25519 key")
            return VerifyKey(pub.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw))
        if text.startswith("{"):
            return VerifyKey(b64url_decode(json.loads(text)["x"]))
        return VerifyKey(b64url_decode(text.replace("+", "-").replace("/", "_").rstrip("=")))
    except KeyMalformed:
        raise
    except (ValueError, KeyError, TypeError, binascii.Error, CryptoError, UnsupportedAlgorithm) as exc:
        raise KeyMalformed("unreadable public key") from exc


def generate_signing_key(encoding: KeyEncoding = "pem") -> tuple[str, str]:
    """Fresh Ed25519 keypair as ``(private_text, public_text)`` in ``encoding``."""
    sk = SigningKey.generate()
    if encoding == "jwk":
        x = b64url_encode(bytes(sk.verify_key))
        private = {"kty": "OKP", "crv": "Ed25519", "x": x, "d": b64url_encode(bytes(sk))}
        public = {"kty": "OKP", "crv": "Ed25519", "x": x}
        return json.dumps(private), json.dumps(public)
    key = Ed25519PrivateKey.from_private_bytes(bytes(sk))
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")
    return private_pem, public_pem
