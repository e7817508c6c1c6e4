"""
Error taxonomy for the attestation core.

Every failure surfaced by the core is an ``AttestationError`` carrying a
stable ``code`` and an HTTP status hint for whatever layer fronts it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    INVALID_HASH = "invalid_hash"
    KEY_MISSING = "key_missing"
    KEY_MALFORMED = "key_malformed"
    SIGNING_FAILED = "signing_failed"
    NOT_FOUND = "not_found"
    STORE_UNAVAILABLE = "store_unavailable"
    ALREADY_ANCHORED = "already_anchored"
    TOKEN_INVALID = "token_invalid"
    DIGEST_TIMEOUT = "digest_timeout"
    INVALID_PACK = "invalid_pack"
    FILE_UNREADABLE = "file_unreadable"


class AttestationError(Exception):
    code: ErrorCode = ErrorCode.SIGNING_FAILED
    http_status: int = 500

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.code.value)
        self.message = message or self.code.value
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"ok": False, "error": self.code.value, "message": self.message}


class InvalidHash(AttestationError):
    code = ErrorCode.INVALID_HASH
    http_status = 400


class KeyMissing(AttestationError):
    code = ErrorCode.KEY_MISSING


class KeyMalformed(AttestationError):
    code = ErrorCode.KEY_MALFORMED


class SigningFailed(AttestationError):
    code = ErrorCode.SIGNING_FAILED


class NotFound(AttestationError):
    code = ErrorCode.NOT_FOUND
    http_status = 404


class StoreUnavailable(AttestationError):
    code = ErrorCode.STORE_UNAVAILABLE
    http_status = 503


class AlreadyAnchored(AttestationError):
    code = ErrorCode.ALREADY_ANCHORED
    http_status = 409


class TokenInvalid(AttestationError):
    code = ErrorCode.TOKEN_INVALID
    http_status = 401


class DigestTimeout(AttestationError):
    code = ErrorCode.DIGEST_TIMEOUT
    http_status = 504


class InvalidPack(AttestationError):
    code = ErrorCode.INVALID_PACK
    http_status = 400


class FileUnreadable(AttestationError):
    code = ErrorCode.FILE_UNREADABLE
