from .render import SealDocument, build_seal_payload, render_seal, render_seal_pdf

__all__ = ["SealDocument", "build_seal_payload", "render_seal", "render_seal_pdf"]
