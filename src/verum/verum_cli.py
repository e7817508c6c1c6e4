from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from .errors import AttestationError, FileUnreadable, NotFound
from .logconfig import configure_logging
from .receipts.fingerprint import digest_pack
from .receipts.keys import generate_signing_key, load_verify_key
from .receipts.sign import verify_token
from .seal import render_seal
from .service import AttestationService, build_store, load_config
from .settings import Settings, settings as default_settings

log = logging.getLogger(__name__)


def _service(s: Settings) -> AttestationService:
    return AttestationService(load_config(s), build_store(s))


def _emit(obj: dict) -> None:
    print(json.dumps(obj, indent=2))


def cmd_keygen(args: argparse.Namespace, s: Settings) -> int:
    private, public = generate_signing_key(args.encoding)
    if args.out:
        out = Path(args.out)
        try:
            fd = os.open(out, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError:
            print(f"{out} already exists; refusing to overwrite a signing key", file=sys.stderr)
            return 1
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(private)
        Path(f"{out}.pub").write_text(public)
        print(f"Wrote {out} and {out}.pub")
    else:
        print(private)
        print(public, file=sys.stderr)
    return 0


def cmd_fingerprint(args: argparse.Namespace, s: Settings) -> int:
    pack = digest_pack([(Path(p).name, Path(p)) for p in args.files], timeout=s.fingerprint_timeout_seconds)
    _emit({"items": [i.model_dump() for i in pack.items], "packDigest": pack.digest})
    return 0


def cmd_anchor(args: argparse.Namespace, s: Settings) -> int:
    _emit({"ok": True, **_service(s).issue_anchor(args.hash).to_wire()})
    return 0


def cmd_receipt(args: argparse.Namespace, s: Settings) -> int:
    _emit({"ok": True, **_service(s).get_or_regenerate_receipt(args.hash).to_wire()})
    return 0


def cmd_statement(args: argparse.Namespace, s: Settings) -> int:
    svc = _service(s)
    _emit(svc.rules_statement() if args.rules else svc.reference_statement())
    return 0


def cmd_seal(args: argparse.Namespace, s: Settings) -> int:
    svc = _service(s)
    pdf = render_seal(
        svc,
        args.hash,
        title=args.title,
        notes=args.notes,
        logo_path=s.assets_dir / s.logo_file,
        regenerate=args.regenerate,
    )
    out = Path(args.out or f"verum_{args.hash.strip().lower()[:8]}.pdf")
    out.write_bytes(pdf)
    print(f"Wrote {out}")
    return 0


def cmd_verify(args: argparse.Namespace, s: Settings) -> int:
    try:
        key_text = Path(args.public_key).read_text()
    except FileNotFoundError as exc:
        raise NotFound(f"public key file not found: {args.public_key}") from exc
    except OSError as exc:
        raise FileUnreadable(f"cannot read public key file {args.public_key}: {exc}") from exc
    vk = load_verify_key(key_text)
    claims = verify_token(args.token, vk, issuer=s.issuer)
    _emit({"ok": True, "claims": claims})
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="verum", description="Verum attestation receipts and seals")
    p.add_argument("--json-logs", action="store_true", help="Emit log lines as JSON")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_keygen = sub.add_parser("keygen", help="Generate an Ed25519 signing key")
    p_keygen.add_argument("--encoding", choices=("pem", "jwk"), default="pem")
    p_keygen.add_argument("--out", help="Private key path (public key written to <out>.pub)")
    p_keygen.set_defaults(func=cmd_keygen)

    p_fp = sub.add_parser("fingerprint", help="SHA-512 digests of files and their pack digest")
    p_fp.add_argument("files", nargs="+")
    p_fp.set_defaults(func=cmd_fingerprint)

    p_anchor = sub.add_parser("anchor", help="Issue and persist a signed receipt for a hash")
    p_anchor.add_argument("hash")
    p_anchor.set_defaults(func=cmd_anchor)

    p_receipt = sub.add_parser("receipt", help="Stored receipt, or a regenerated unanchored one")
    p_receipt.add_argument("hash")
    p_receipt.set_defaults(func=cmd_receipt)

    p_stmt = sub.add_parser("statement", help="Signed statement of reference digests")
    p_stmt.add_argument("--rules", action="store_true", help="Describe the rules pack instead")
    p_stmt.set_defaults(func=cmd_statement)

    p_seal = sub.add_parser("seal", help="Render a sealed PDF for a hash")
    p_seal.add_argument("hash")
    p_seal.add_argument("--title", default="")
    p_seal.add_argument("--notes", default="")
    p_seal.add_argument("--out", help="Output path (default verum_<hash8>.pdf)")
    p_seal.add_argument("--regenerate", action="store_true",
                        help="Use a regenerated receipt when the hash was never anchored")
    p_seal.set_defaults(func=cmd_seal)

    p_verify = sub.add_parser("verify", help="Verify a signed token")
    p_verify.add_argument("token")
    p_verify.add_argument("--public-key", required=True, help="PEM, JWK or base64 public key file")
    p_verify.set_defaults(func=cmd_verify)
    return p


def main(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    s = settings or default_settings
    configure_logging(s.log_level, json_format=args.json_logs)
    try:
        return args.func(args, s)
    except AttestationError as exc:
        log.error("%s: %s", exc.code.value, exc.message)
        print(json.dumps(exc.to_dict()), file=sys.stderr)
        return 2 if exc.http_status == 400 else 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
