import io

from docpipe.logging.logger import Log
from docpipe.normalization.normalizer import normalize
from docpipe.pdf.base import BasePdfBackend
from docpipe.pdf.exceptions import PdfExtractionError
from docpipe.processor.file_loader import FileLoader
from docpipe.processor.governor import Budget
from docpipe.processor.models import Attachment, Query, StepOutcome
from docpipe.processor.pipeline import PipelineStep, format_extracted_data


class PDFStep(PipelineStep):
    """Extracts embedded page text and renders text-poor pages for OCR.

    Pages with at least ``min_page_chars`` characters of normalized text become
    prompt parts. The others are rendered to PNG attachments, at most
    ``max_rendered_pages`` of them, chosen by ``select_pages``.
    """

    name = "pdf"
    fatal = True

    def __init__(
        self,
        backend: BasePdfBackend,
        render_scale: float = 1.5,
        min_page_chars: int = 50,
        max_rendered_pages: int = 4,
        file_loader: FileLoader | None = None,
    ) -> None:
        self._backend = backend
        self._render_scale = render_scale
        self._min_page_chars = min_page_chars
        self._max_rendered_pages = max_rendered_pages
        self._file_loader = file_loader if file_loader is not None else FileLoader()

    def run(self, query: Query, budget: Budget) -> StepOutcome:
        pdf_bytes = self._file_loader.load(query)
        page_texts = [normalize(text) for text in self._backend.page_texts(pdf_bytes)]
        Log.info(f"Extracted text from {len(page_texts)} pages of {query.file_path}")
        if not page_texts:
            return StepOutcome.completed(errors=["document has no pages"])
        budget.check()

        candidates = [
            number
            for number, text in enumerate(page_texts, start=1)
            if len(text) < self._min_page_chars
        ]
        selected = select_pages(candidates, self._max_rendered_pages)
        errors: list[str] = []
        if len(selected) < len(candidates):
            omitted = [number for number in candidates if number not in selected]
            errors.append(
                f"{len(omitted)} text-poor pages not rendered (limit "
                f"{self._max_rendered_pages}): {', '.join(map(str, omitted))}"
            )

        rendered = budget.map_ordered(lambda number: self._render(pdf_bytes, number), selected)
        rendered_pages: set[int] = set()
        attachments: list[Attachment] = []
        for number, png, error in rendered:
            if png is None:
                errors.append(f"page {number}: {error}")
                continue
            rendered_pages.add(number)
            attachments.append(Attachment(page=number, data=png))

        # short text of pages that were not rendered is still better than nothing
        parts = [
            format_extracted_data(text, page=number)
            for number, text in enumerate(page_texts, start=1)
            if text and number not in rendered_pages
        ]
        Log.info(
            f"PDF {query.file_path}: {len(parts)} text pages, {len(attachments)} rendered pages"
        )
        return StepOutcome.completed(prompt_parts=parts, attachments=attachments, errors=errors)

    def _render(self, pdf_bytes: bytes, number: int) -> tuple[int, bytes | None, str | None]:
        try:
            image = self._backend.render_page(pdf_bytes, number - 1, self._render_scale)
        except PdfExtractionError as exc:
            Log.warning(f"Rendering page {number} failed: {exc}")
            return number, None, str(exc)
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        Log.debug(f"Rendered page {number} at {image.width}x{image.height}")
        return number, buffer.getvalue(), None


def select_pages(candidates: list[int], limit: int) -> list[int]:
    """Keep all candidates up to ``limit``; beyond it, the first and last pages.

    The head takes the larger half of an odd limit.
    """
    if len(candidates) <= limit:
        return list(candidates)
    tail = limit // 2
    head = limit - tail
    return candidates[:head] + (candidates[-tail:] if tail else [])
