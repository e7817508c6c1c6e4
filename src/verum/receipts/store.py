"""
Receipt persistence.

Receipts are keyed on the attested hash string, exactly as given. There is
no update or delete; ``put_if_absent`` is the atomic primitive the service
uses to keep at most one durable anchor per hash.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from ..errors import InvalidHash, StoreUnavailable
from .models import Receipt

log = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[0-9A-Za-z]+$")


class ReceiptStore(ABC):
    @abstractmethod
    def get(self, hash: str) -> Receipt | None:
        """Stored receipt for ``hash`` or ``None``."""

    @abstractmethod
    def put(self, hash: str, receipt: Receipt) -> None:
        """Store ``receipt``, replacing any earlier one (last write wins)."""

    @abstractmethod
    def put_if_absent(self, hash: str, receipt: Receipt) -> Receipt:
        """Store ``receipt`` unless one exists; return whichever is stored."""


class MemoryReceiptStore(ReceiptStore):
    def __init__(self):
        self._data: dict[str, Receipt] = {}
        self._lock = threading.Lock()

    def get(self, hash: str) -> Receipt | None:
        with self._lock:
            return self._data.get(hash)

    def put(self, hash: str, receipt: Receipt) -> None:
        with self._lock:
            self._data[hash] = receipt

    def put_if_absent(self, hash: str, receipt: Receipt) -> Receipt:
        with self._lock:
            return self._data.setdefault(hash, receipt)

    def __len__(self) -> int:
        return len(self._data)


class FileReceiptStore(ReceiptStore):
    """One JSON document per hash under ``root``.

    Writes go to a temporary file first; ``put`` renames it into place and
    ``put_if_absent`` hard-links it, which fails if the target exists.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, hash: str) -> Path:
        if not _KEY_RE.match(hash):
            raise InvalidHash("receipt key must be alphanumeric")
        return self.root / f"{hash}.json"

    def _write_tmp(self, receipt: Receipt) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".json")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(receipt.model_dump_json(indent=2))
        return Path(tmp)

    def get(self, hash: str) -> Receipt | None:
        p = self._path(hash)
        try:
            raw = p.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreUnavailable(f"cannot read receipt store: {exc}") from exc
        try:
            return Receipt.model_validate_json(raw)
        except ValidationError as exc:
            log.exception("stored receipt %s is corrupt", p.name)
            raise StoreUnavailable(f"stored receipt for {hash[:16]} is corrupt") from exc

    def put(self, hash: str, receipt: Receipt) -> None:
        p = self._path(hash)
        try:
            tmp = self._write_tmp(receipt)
            os.replace(tmp, p)
        except OSError as exc:
            raise StoreUnavailable(f"cannot write receipt store: {exc}") from exc

    def put_if_absent(self, hash: str, receipt: Receipt) -> Receipt:
        p = self._path(hash)
        try:
            tmp = self._write_tmp(receipt)
            try:
                os.link(tmp, p)
            except FileExistsError:
                existing = self.get(hash)
                if existing is None:  # pragma: no cover - target vanished between link and read
                    raise StoreUnavailable(f"receipt for {hash[:16]} disappeared")
                return existing
            finally:
                tmp.unlink(missing_ok=True)
        except OSError as exc:
            raise StoreUnavailable(f"cannot write receipt store: {exc}") from exc
        return receipt
