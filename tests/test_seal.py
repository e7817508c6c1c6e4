import json

import pytest

from conftest import HASH64
from verum.errors import InvalidHash
from verum.seal import build_seal_payload, render_seal, render_seal_pdf


def test_unsealed_payload_without_receipt():
    seal = build_seal_payload(HASH64, None)
    assert seal.sealed is False
    assert seal.title == "Verum Omnis Seal"
    assert seal.hash_display == HASH64[:16] + "…"
    assert seal.txid_display == ""
    assert seal.issued_at is None
    assert json.loads(seal.qr_text()) == {
        "verum": True,
        "hash": HASH64,
        "productId": "VO-Web32",
        "receipt": None,
    }


def test_payload_redisplays_receipt_fields(service):
    r = service.issue_anchor(HASH64)
    seal = build_seal_payload(HASH64, r, title="Contract", notes="signed copy")
    assert seal.sealed
    assert seal.chain == "eth"
    assert seal.txid_display == r.txid[:16] + "…"
    assert seal.issued_at == r.issuedAt
    assert seal.qr_payload["receipt"] == {"chain": "eth", "txid": r.txid, "issuedAt": r.issuedAt}
    assert "signature" not in seal.qr_text()


def test_title_and_notes_are_truncated():
    seal = build_seal_payload(HASH64, None, title="t" * 500, notes="n" * 5000)
    assert len(seal.title) == 120
    assert len(seal.notes) == 2000


def test_render_pdf_bytes(service):
    r = service.issue_anchor(HASH64)
    pdf = render_seal_pdf(build_seal_payload(HASH64, r, notes="line one\nline two " * 40))
    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 1000


def test_render_seal_without_anchor_does_not_fail(service, store):
    pdf = render_seal(service, HASH64.upper(), title="Draft")
    assert pdf.startswith(b"%PDF")
    assert store.get(HASH64) is None


def test_render_seal_regenerate_does_not_persist(service, store):
    pdf = render_seal(service, HASH64, regenerate=True)
    assert pdf.startswith(b"%PDF")
    assert store.get(HASH64) is None


def test_render_seal_rejects_bad_hash(service):
    with pytest.raises(InvalidHash):
        render_seal(service, "abc")


def test_missing_logo_is_ignored(tmp_path):
    pdf = render_seal_pdf(build_seal_payload(HASH64, None), logo_path=tmp_path / "vo_logo.png")
    assert pdf.startswith(b"%PDF")
