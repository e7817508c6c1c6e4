from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from verum.receipts.keys import generate_signing_key, load_verify_key
from verum.receipts.store import MemoryReceiptStore
from verum.service import AttestationConfig, AttestationService

HASH64 = "ab" * 32
HASH128 = "0f" * 64


class StepClock:
    """Deterministic UTC clock advancing one second per call."""

    def __init__(self, start: datetime = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)):
        self._start = start
        self._ticks = count()

    def __call__(self) -> datetime:
        return self._start + timedelta(seconds=next(self._ticks))


@pytest.fixture
def jwk_keypair():
    return generate_signing_key("jwk")


@pytest.fixture
def pem_keypair():
    return generate_signing_key("pem")


@pytest.fixture
def verify_key(jwk_keypair):
    return load_verify_key(jwk_keypair[1])


@pytest.fixture
def config(jwk_keypair):
    return AttestationConfig(
        signing_key=jwk_keypair[0],
        key_encoding="jwk",
        manifest_hash="1" * 128,
        constitution_hash="2" * 128,
    )


@pytest.fixture
def store():
    return MemoryReceiptStore()


@pytest.fixture
def service(config, store):
    return AttestationService(config, store, clock=StepClock())
