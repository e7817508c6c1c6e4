"""Signed attestation receipts for content hashes."""

__version__ = "0.1.0"
