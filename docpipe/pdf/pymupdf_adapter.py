import pymupdf
from PIL import Image

from docpipe.pdf.base import BasePdfBackend, image_from_samples
from docpipe.pdf.exceptions import PdfExtractionError
from docpipe.processor.exceptions import BufferMismatchError


class PyMuPdfBackend(BasePdfBackend):
    """Extracts text and renders pages with PyMuPDF."""

    def page_texts(self, pdf_bytes: bytes) -> list[str]:
        try:
            with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                return [page.get_text() for page in doc]
        except Exception as exc:
            raise PdfExtractionError(f"pymupdf extraction failed: {exc}") from exc

    def render_page(self, pdf_bytes: bytes, page_index: int, scale: float) -> Image.Image:
        try:
            with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                page = doc.load_page(page_index)
                pixmap = page.get_pixmap(matrix=pymupdf.Matrix(scale, scale), alpha=False)
                return image_from_samples(
                    pixmap.width, pixmap.height, pixmap.n, pixmap.stride, pixmap.samples
                )
        except BufferMismatchError:
            raise
        except Exception as exc:
            raise PdfExtractionError(
                f"pymupdf rendering of page {page_index + 1} failed: {exc}"
            ) from exc
