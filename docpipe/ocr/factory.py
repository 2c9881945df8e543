import shutil

import pytesseract

from docpipe.config.settings import Settings
from docpipe.logging.logger import Log
from docpipe.ocr.base import BaseOcrEngine
from docpipe.ocr.tesseract_engine import TesseractEngine


class OcrEngineFactory:
    """Creates the configured OCR engine, or None when recognition is disabled."""

    ENGINES: dict[str, type[TesseractEngine]] = {
        "tesseract": TesseractEngine,
    }
    DISABLED = "none"

    @classmethod
    def create(cls, settings: Settings) -> BaseOcrEngine | None:
        engine = settings.ocr_engine.lower()
        if engine == cls.DISABLED:
            return None
        if engine not in cls.ENGINES:
            raise ValueError(
                f"Unknown OCR engine '{engine}'. "
                f"Choose from: {[*cls.ENGINES, cls.DISABLED]}"
            )
        if shutil.which(pytesseract.pytesseract.tesseract_cmd) is None:
            Log.warning("tesseract binary not found; recognition will fail per page")
        return cls.ENGINES[engine](language=settings.ocr_language, psm=settings.ocr_psm)
