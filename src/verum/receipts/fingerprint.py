"""SHA-512 fingerprints for reference files and ordered file packs.

A pack digest is the SHA-512 of the concatenated hex digests of its members,
taken in file-name order. Enumeration order, mtime and size never affect it.
"""
from __future__ import annotations

import hashlib
import logging
import os
import time
from collections import Counter
from pathlib import Path
from typing import Iterable

from ..errors import DigestTimeout, FileUnreadable, InvalidPack, NotFound
from .models import FileDigest, PackDigest

log = logging.getLogger(__name__)

HASH_ALG = "sha512"
MISSING = "missing"
_CHUNK = 65536


def digest_bytes(data: bytes | str) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha512(data).hexdigest()


def _check_deadline(deadline: float | None, path: Path) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise DigestTimeout(f"fingerprint deadline exceeded at {path.name}", path=str(path))


def _hash_file(p: Path, deadline: float | None) -> tuple[str, int]:
    h = hashlib.sha512()
    size = 0
    try:
        with p.open("rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK), b""):
                _check_deadline(deadline, p)
                h.update(chunk)
                size += len(chunk)
    except FileNotFoundError as exc:
        raise NotFound(f"reference file not found: {p}", path=str(p)) from exc
    except OSError as exc:
        raise FileUnreadable(f"cannot read reference file {p}: {exc.strerror or exc}", path=str(p)) from exc
    return h.hexdigest(), size


def digest_file(path: str | os.PathLike, deadline: float | None = None) -> str:
    """Hex SHA-512 of the raw file bytes.

    ``deadline`` is a ``time.monotonic()`` value; it is checked between chunks.
    """
    return _hash_file(Path(path), deadline)[0]


def file_digest(name: str, path: str | os.PathLike, deadline: float | None = None) -> FileDigest:
    digest, size = _hash_file(Path(path), deadline)
    return FileDigest(name=name, size=size, digest=digest)


def pack_digest_of(items: Iterable[FileDigest]) -> str:
    ordered = sorted(items, key=lambda i: i.name)
    return digest_bytes("".join(i.digest for i in ordered))


def digest_pack(
    files: Iterable[tuple[str, str | os.PathLike]],
    timeout: float | None = None,
) -> PackDigest:
    files = list(files)
    dupes = sorted(n for n, c in Counter(name for name, _ in files).items() if c > 1)
    if dupes:
        raise InvalidPack(f"pack member names must be unique: {', '.join(dupes)}", names=dupes)
    deadline = time.monotonic() + timeout if timeout is not None else None
    items = [file_digest(name, path, deadline) for name, path in sorted(files, key=lambda f: f[0])]
    return PackDigest(items=tuple(items), digest=pack_digest_of(items))


def list_pack_files(directory: str | os.PathLike) -> list[tuple[str, Path]]:
    """Regular files directly under ``directory``; a missing directory is an empty pack."""
    d = Path(directory)
    if not d.is_dir():
        log.warning("pack directory %s not found; treating as empty", d)
        return []
    return sorted((p.name, p) for p in d.iterdir() if p.is_file())


def reference_digest(path: str | os.PathLike, timeout: float | None = None) -> str:
    """Digest of a single reference artifact, or ``"missing"`` when it is absent."""
    deadline = time.monotonic() + timeout if timeout is not None else None
    try:
        return digest_file(path, deadline)
    except NotFound:
        log.warning("reference artifact %s missing; using degraded digest", path)
        return MISSING
