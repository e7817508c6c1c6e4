"""Printable seal documents.

A seal re-displays an existing receipt; it never produces new cryptographic
material. A missing receipt yields an unsealed document rather than an error.
"""
from __future__ import annotations

import io
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict
from reportlab.graphics import renderPDF
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from ..receipts.models import Receipt
from ..service import AttestationService, normalize_hash


log = logging.getLogger(__name__)

DEFAULT_TITLE = "Verum Omnis Seal"
MAX_TITLE = 120
MAX_NOTES = 2000
MARGIN = 56
DISPLAY_CHARS = 16


def truncate(s: str | None, n: int = DISPLAY_CHARS) -> str:
    return s[:n] + "…" if s else ""


class SealDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    hash: str
    title: str
    notes: str
    product_id: str
    hash_display: str
    chain: str | None = None
    txid_display: str = ""
    issued_at: str | None = None
    sealed: bool = False
    qr_payload: dict[str, Any]

    def qr_text(self) -> str:
        return json.dumps(self.qr_payload, separators=(",", ":"))


def build_seal_payload(
    hash: str,
    receipt: Receipt | None,
    title: str | None = None,
    notes: str | None = None,
    product_id: str = "VO-Web32",
) -> SealDocument:
    summary = None
    if receipt is not None:
        summary = {"chain": receipt.chain, "txid": receipt.txid, "issuedAt": receipt.issuedAt}
    return SealDocument(
        hash=hash,
        title=(title or "")[:MAX_TITLE] or DEFAULT_TITLE,
        notes=(notes or "")[:MAX_NOTES],
        product_id=product_id,
        hash_display=truncate(hash),
        chain=receipt.chain if receipt else None,
        txid_display=truncate(receipt.txid if receipt else None),
        issued_at=receipt.issuedAt if receipt else None,
        sealed=receipt is not None,
        qr_payload={"verum": True, "hash": hash, "productId": product_id, "receipt": summary},
    )


def _font(font_path: Path | None) -> str:
    if font_path and font_path.exists():
        if "DejaVuSans" not in pdfmetrics.getRegisteredFontNames():
            pdfmetrics.registerFont(TTFont("DejaVuSans", str(font_path)))
        return "DejaVuSans"
    return "Helvetica"


def _draw_qr(c: canvas.Canvas, text: str, x: float, y: float, size: float) -> None:
    widget = QrCodeWidget(text)
    x1, y1, x2, y2 = widget.getBounds()
    w, h = x2 - x1, y2 - y1
    d = Drawing(size, size, transform=[size / w, 0, 0, size / h, 0, 0])
    d.add(widget)
    renderPDF.draw(d, c, x, y)


def render_seal_pdf(
    seal: SealDocument,
    logo_path: Path | None = None,
    font_path: Path | None = None,
) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(seal.title)
    width, height = A4
    font = _font(font_path)
    text_w = width - 2 * MARGIN

    if logo_path and logo_path.exists():
        logo = ImageReader(str(logo_path))
        c.drawImage(logo, (width - 140) / 2, height - 24 - 70, width=140, height=70,
                    preserveAspectRatio=True, mask="auto")
        wm = 360
        c.saveState()
        c.setFillAlpha(0.08)
        c.drawImage(logo, (width - wm) / 2, (height - wm) / 2, width=wm, height=wm,
                    preserveAspectRatio=True, mask="auto")
        c.restoreState()

    y = height - MARGIN - 90
    c.setFont(font, 18)
    c.drawCentredString(width / 2, y, seal.title)
    y -= 32

    c.setFont(font, 10)
    for line in simpleSplit(f"SHA-512: {seal.hash}", font, 10, text_w):
        c.drawString(MARGIN, y, line)
        y -= 14
    if seal.issued_at:
        c.drawString(MARGIN, y, f"Issued: {seal.issued_at}")
        y -= 14
    if seal.txid_display:
        c.drawString(MARGIN, y, f"Anchor: {seal.chain or 'eth'} / {seal.txid_display}")
        y -= 14
    c.drawString(MARGIN, y, f"Product: {seal.product_id}")
    y -= 24

    if seal.notes:
        c.setFont(font, 11)
        c.drawString(MARGIN, y, "Notes:")
        c.line(MARGIN, y - 2, MARGIN + c.stringWidth("Notes:", font, 11), y - 2)
        y -= 16
        c.setFont(font, 10)
        for line in simpleSplit(seal.notes, font, 10, text_w):
            if y < MARGIN + 130:
                break
            c.drawString(MARGIN, y, line)
            y -= 13

    block_w, block_h = 240, 110
    bx, by = width - block_w - MARGIN, MARGIN
    c.roundRect(bx, by, block_w, block_h, 12, stroke=1, fill=0)
    _draw_qr(c, seal.qr_text(), bx + 8, by + 12, 90)
    c.setFont(font, 10)
    c.drawString(bx + 110, by + block_h - 24, "Patent Pending Verum Omnis")
    c.drawString(bx + 110, by + block_h - 40, f"Hash: {seal.hash_display}")
    status = "This document is sealed and tamper-evident." if seal.sealed else "Unsealed: no anchor found."
    for i, line in enumerate(simpleSplit(status, font, 9, block_w - 118)):
        c.setFont(font, 9)
        c.drawString(bx + 110, by + 44 - i * 12, line)

    c.showPage()
    c.save()
    return buf.getvalue()


def render_seal(
    service: AttestationService,
    hash: str,
    title: str | None = None,
    notes: str | None = None,
    logo_path: Path | None = None,
    font_path: Path | None = None,
    regenerate: bool = False,
) -> bytes:
    """Seal PDF for ``hash``.

    Uses the stored receipt when one exists. With ``regenerate`` a hash that
    was never anchored gets a freshly signed unanchored receipt instead of an
    unsealed document.
    """
    h = normalize_hash(hash)
    receipt = service.get_or_regenerate_receipt(h) if regenerate else service.lookup(h)
    seal = build_seal_payload(h, receipt, title, notes, service.config.product_id)
    log.info("rendering %s seal for %s", "sealed" if seal.sealed else "unsealed", seal.hash_display)
    return render_seal_pdf(seal, logo_path, font_path)
