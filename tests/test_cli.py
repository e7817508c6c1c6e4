import json

from conftest import HASH64
from verum.receipts.keys import generate_signing_key
from verum.settings import Settings
from verum.verum_cli import main


def _settings(tmp_path, key):
    return Settings(data_dir=tmp_path / "data", assets_dir=tmp_path / "assets", signing_key=key)


def test_cli_anchor_receipt_verify(tmp_path, capsys):
    private, public = generate_signing_key("pem")
    s = _settings(tmp_path, private)
    pub = tmp_path / "key.pub"
    pub.write_text(public)

    assert main(["anchor", HASH64], settings=s) == 0
    anchored = json.loads(capsys.readouterr().out)
    assert anchored["ok"] is True and anchored["txid"]

    assert main(["receipt", HASH64], settings=s) == 0
    looked_up = json.loads(capsys.readouterr().out)
    assert looked_up["signature"] == anchored["signature"]

    assert main(["verify", anchored["signature"], "--public-key", str(pub)], settings=s) == 0
    claims = json.loads(capsys.readouterr().out)["claims"]
    assert claims["hash"] == HASH64


def test_cli_invalid_hash_exit_code(tmp_path, capsys):
    s = _settings(tmp_path, generate_signing_key("jwk")[0])
    assert main(["anchor", "abc"], settings=s) == 2
    err = capsys.readouterr().err
    assert '"error": "invalid_hash"' in err


def test_cli_missing_key_exit_code(tmp_path, capsys):
    assert main(["anchor", HASH64], settings=_settings(tmp_path, "")) == 1
    assert "key_missing" in capsys.readouterr().err


def test_cli_fingerprint(tmp_path, capsys):
    (tmp_path / "a").write_bytes(b"x")
    (tmp_path / "b").write_bytes(b"y")
    s = _settings(tmp_path, "")
    assert main(["fingerprint", str(tmp_path / "b"), str(tmp_path / "a")], settings=s) == 0
    out = json.loads(capsys.readouterr().out)
    assert [i["name"] for i in out["items"]] == ["a", "b"]
    assert len(out["packDigest"]) == 128


def test_cli_keygen_and_seal(tmp_path, capsys):
    key = tmp_path / "signing.jwk"
    assert main(["keygen", "--encoding", "jwk", "--out", str(key)], settings=_settings(tmp_path, "")) == 0
    s = _settings(tmp_path, key.read_text())
    out = tmp_path / "seal.pdf"
    assert main(["seal", HASH64, "--title", "Deed", "--out", str(out)], settings=s) == 0
    assert out.read_bytes().startswith(b"%PDF")
    capsys.readouterr()
    assert main(["statement", "--rules"], settings=s) == 0
    stmt = json.loads(capsys.readouterr().out)
    assert stmt["rules"] == []


def test_cli_fingerprint_errors_exit_cleanly(tmp_path, capsys):
    s = _settings(tmp_path, "")
    assert main(["fingerprint", str(tmp_path)], settings=s) == 1
    assert "file_unreadable" in capsys.readouterr().err
    d1, d2 = tmp_path / "d1", tmp_path / "d2"
    d1.mkdir()
    d2.mkdir()
    (d1 / "rules.json").write_bytes(b"x")
    (d2 / "rules.json").write_bytes(b"y")
    assert main(["fingerprint", str(d1 / "rules.json"), str(d2 / "rules.json")], settings=s) == 2
    assert "invalid_pack" in capsys.readouterr().err


def test_cli_keygen_private_key_mode_and_no_overwrite(tmp_path, capsys):
    key = tmp_path / "signing.pem"
    s = _settings(tmp_path, "")
    assert main(["keygen", "--out", str(key)], settings=s) == 0
    assert key.stat().st_mode & 0o777 == 0o600
    original = key.read_text()
    assert main(["keygen", "--out", str(key)], settings=s) == 1
    assert key.read_text() == original


def test_cli_verify_missing_public_key(tmp_path, capsys):
    s = _settings(tmp_path, "")
    assert main(["verify", "a.b.c", "--public-key", str(tmp_path / "absent.pub")], settings=s) == 1
    assert "not_found" in capsys.readouterr().err
