import threading

import pytest

from verum.errors import InvalidHash, StoreUnavailable
from verum.receipts.models import Receipt
from verum.receipts.store import FileReceiptStore, MemoryReceiptStore

H = "ab" * 32


def _receipt(txid: str, hash: str = H) -> Receipt:
    return Receipt(
        hash=hash,
        chain="eth",
        txid=txid,
        manifestHash="m",
        constitutionHash="c",
        product="VO-Web32",
        issuedAt="2025-01-02T03:04:05.000Z",
        signature="sig." + txid,
    )


@pytest.fixture(params=["memory", "file"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return MemoryReceiptStore()
    return FileReceiptStore(tmp_path / "receipts")


def test_get_absent(any_store):
    assert any_store.get(H) is None


def test_put_then_get_and_overwrite(any_store):
    any_store.put(H, _receipt("1"))
    assert any_store.get(H) == _receipt("1")
    any_store.put(H, _receipt("2"))
    assert any_store.get(H).txid == "2"


def test_keys_are_exact_match(any_store):
    any_store.put(H, _receipt("1"))
    assert any_store.get(H.upper()) is None
    assert any_store.get(H + "00") is None


def test_put_if_absent_keeps_first(any_store):
    first = any_store.put_if_absent(H, _receipt("1"))
    second = any_store.put_if_absent(H, _receipt("2"))
    assert first.txid == "1"
    assert second.txid == "1"
    assert any_store.get(H).txid == "1"


def test_put_if_absent_under_contention(any_store):
    results = []
    barrier = threading.Barrier(8)

    def worker(i):
        barrier.wait()
        results.append(any_store.put_if_absent(H, _receipt(str(i))))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len({r.txid for r in results}) == 1
    assert any_store.get(H).txid == results[0].txid


def test_file_store_persists_across_instances(tmp_path):
    FileReceiptStore(tmp_path).put(H, _receipt("1"))
    assert FileReceiptStore(tmp_path).get(H) == _receipt("1")
    assert not list(tmp_path.glob(".tmp-*"))


def test_file_store_rejects_path_like_keys(tmp_path):
    with pytest.raises(InvalidHash):
        FileReceiptStore(tmp_path).get("../etc/passwd")


def test_file_store_corrupt_record(tmp_path):
    (tmp_path / f"{H}.json").write_text("{not-json")
    with pytest.raises(StoreUnavailable):
        FileReceiptStore(tmp_path).get(H)


def test_file_store_unwritable_root(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory")
    with pytest.raises(StoreUnavailable):
        FileReceiptStore(blocker / "receipts").put(H, _receipt("1"))
