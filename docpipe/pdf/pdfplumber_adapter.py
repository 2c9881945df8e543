import io

import pdfplumber
from PIL import Image

from docpipe.pdf.base import BasePdfBackend
from docpipe.pdf.exceptions import PdfExtractionError

_BASE_DPI = 72


class PdfPlumberBackend(BasePdfBackend):
    """Extracts text and renders pages with pdfplumber."""

    def page_texts(self, pdf_bytes: bytes) -> list[str]:
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                return [page.extract_text() or "" for page in pdf.pages]
        except Exception as exc:
            raise PdfExtractionError(f"pdfplumber extraction failed: {exc}") from exc

    def render_page(self, pdf_bytes: bytes, page_index: int, scale: float) -> Image.Image:
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                page = pdf.pages[page_index]
                rendered = page.to_image(resolution=round(_BASE_DPI * scale))
                return rendered.original.convert("RGB")
        except Exception as exc:
            raise PdfExtractionError(
                f"pdfplumber rendering of page {page_index + 1} failed: {exc}"
            ) from exc
