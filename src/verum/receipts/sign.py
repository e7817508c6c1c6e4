from __future__ import annotations

import binascii
import json
import logging
import threading
import time
from typing import Any, Callable, Mapping

from nacl.exceptions import BadSignatureError, CryptoError
from nacl.signing import SigningKey, VerifyKey

from ..errors import KeyMalformed, KeyMissing, SigningFailed, TokenInvalid
from .keys import KeyEncoding, b64url_decode, b64url_encode, load_signing_key

log = logging.getLogger(__name__)

TOKEN_ALG = "EdDSA"
DEFAULT_ISSUER = "verum.omnis"
DEFAULT_TTL_SECONDS = 3600
_RESERVED = ("iat", "iss", "exp")


def _segment(obj: Mapping[str, Any]) -> str:
    return b64url_encode(json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))


class SigningAuthority:
    """Issues compact EdDSA JWS tokens over structured payloads.

    The private key is parsed on the first ``sign`` call and then held in
    memory for the life of the authority. ``iat`` is taken from ``clock`` on
    every call; tokens are never cached.
    """

    def __init__(
        self,
        key_text: str,
        encoding: KeyEncoding,
        issuer: str = DEFAULT_ISSUER,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._key_text = key_text
        self._encoding = encoding
        self.issuer = issuer
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sk: SigningKey | None = None
        self._lock = threading.Lock()

    def _key(self) -> SigningKey:
        if self._sk is None:
            with self._lock:
                if self._sk is None:
                    try:
                        self._sk = load_signing_key(self._key_text, self._encoding)
                    except (KeyMissing, KeyMalformed):
                        log.error("signing key unavailable; every signing request will fail")
                        raise
        return self._sk

    @property
    def verify_key(self) -> VerifyKey:
        return self._key().verify_key

    def sign(self, payload: Mapping[str, Any]) -> str:
        sk = self._key()
        now = int(self._clock())
        claims = {k: v for k, v in payload.items() if k not in _RESERVED}
        claims.update({"iat": now, "iss": self.issuer, "exp": now + self.ttl_seconds})
        try:
            signing_input = _segment({"alg": TOKEN_ALG, "typ": "JWT"}) + "." + _segment(claims)
            sig = sk.sign(signing_input.encode("ascii")).signature
        except (TypeError, ValueError, CryptoError) as exc:
            log.exception("signing failed")
            raise SigningFailed(f"could not sign payload: {exc}") from exc
        return signing_input + "." + b64url_encode(sig)


def verify_token(
    token: str,
    verify_key: VerifyKey,
    issuer: str | None = DEFAULT_ISSUER,
    now: float | None = None,
) -> dict[str, Any]:
    """Return the claims of a valid token; raise ``TokenInvalid`` otherwise."""
    try:
        header_b64, claims_b64, sig_b64 = token.split(".")
        header = json.loads(b64url_decode(header_b64))
        claims = json.loads(b64url_decode(claims_b64))
        sig = b64url_decode(sig_b64)
    except (ValueError, binascii.Error) as exc:
        raise TokenInvalid("token is not a compact JWS") from exc
    if not isinstance(header, dict) or not isinstance(claims, dict):
        raise TokenInvalid("token segments are not JSON objects")
    if header.get("alg") != TOKEN_ALG:
        raise TokenInvalid(f"unexpected token algorithm {header.get('alg')!r}")
    try:
        verify_key.verify(f"{header_b64}.{claims_b64}".encode("ascii"), sig)
    except (BadSignatureError, ValueError) as exc:
        raise TokenInvalid("signature does not verify") from exc
    if issuer is not None and claims.get("iss") != issuer:
        raise TokenInvalid(f"unexpected issuer {claims.get('iss')!r}")
    current = time.time() if now is None else now
    if not isinstance(claims.get("exp"), int) or claims["exp"] <= current:
        raise TokenInvalid("token expired")
    return claims
