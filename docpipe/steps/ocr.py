import io

from PIL import Image, ImageEnhance, ImageFilter, ImageOps

from docpipe.logging.logger import Log
from docpipe.ocr.base import BaseOcrEngine
from docpipe.processor.exceptions import ImageProcessingError, RecognitionFailure
from docpipe.processor.governor import Budget
from docpipe.processor.models import Attachment, Query, StepOutcome
from docpipe.processor.pipeline import PipelineStep, format_ocr_text
from docpipe.quality.models import DEFAULT_THRESHOLDS, QualityThresholds
from docpipe.quality.validator import validate

_CONTRAST = 1.5


class OCRStep(PipelineStep):
    """Recognizes text in every attachment and screens it with the quality validator.

    Text that fails validation is kept, tagged low quality, and reported.
    """

    name = "ocr"
    fatal = False

    def __init__(
        self,
        engine: BaseOcrEngine | None,
        thresholds: QualityThresholds = DEFAULT_THRESHOLDS,
        timeout_seconds: float = 300.0,
    ) -> None:
        self._engine = engine
        self._thresholds = thresholds
        self._timeout_seconds = timeout_seconds

    def run(self, query: Query, budget: Budget) -> StepOutcome:
        engine = self._engine
        if engine is None:
            Log.info("OCR disabled, skipping")
            return StepOutcome.skipped()
        if not query.attachments:
            return StepOutcome.skipped()

        results = budget.map_ordered(
            lambda attachment: self._recognize(engine, attachment, budget), query.attachments
        )
        parts: list[str] = []
        errors: list[str] = []
        for part, error in results:
            if part is not None:
                parts.append(part)
            if error is not None:
                errors.append(error)
        Log.info(f"OCR produced text for {len(parts)} of {len(query.attachments)} pages")
        if not parts and errors:
            return StepOutcome.failed(RecognitionFailure("no page could be recognized"), errors)
        return StepOutcome.completed(prompt_parts=parts, errors=errors)

    def _recognize(
        self, engine: BaseOcrEngine, attachment: Attachment, budget: Budget
    ) -> tuple[str | None, str | None]:
        """Returns (prompt part, error) for one attachment; either may be None."""
        page = attachment.page
        image_path = budget.scratch_dir / f"page-{page:04d}.png"
        try:
            preprocess(attachment.data).save(image_path, format="PNG")
            budget.check()
            timeout = min(self._timeout_seconds, budget.remaining())
            raw_text = engine.recognize(image_path, timeout)
        except (RecognitionFailure, ImageProcessingError) as exc:
            Log.warning(f"OCR of page {page} failed: {exc}")
            return None, f"page {page}: {exc}"

        verdict = validate(raw_text, self._thresholds)
        Log.debug(f"Page {page} OCR confidence {verdict.confidence}")
        if not verdict.cleaned_text:
            return None, f"page {page}: no text recognized"
        if verdict.passed:
            return format_ocr_text(verdict.cleaned_text, page), None
        return (
            format_ocr_text(verdict.cleaned_text, page, low_quality=True),
            f"page {page}: low OCR quality ({'; '.join(verdict.reasons)})",
        )


def preprocess(data: bytes) -> Image.Image:
    """Grayscale, contrast boost and unsharp mask ahead of recognition.

    Raises:
        ImageProcessingError: if the attachment cannot be decoded.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            gray = ImageOps.grayscale(image)
    except (OSError, ValueError) as exc:
        raise ImageProcessingError(f"cannot decode attachment: {exc}") from exc
    enhanced = ImageEnhance.Contrast(gray).enhance(_CONTRAST)
    return enhanced.filter(ImageFilter.UnsharpMask())
