from pathlib import Path

import pytesseract

from docpipe.ocr.base import BaseOcrEngine
from docpipe.processor.exceptions import RecognitionFailure


class TesseractEngine(BaseOcrEngine):
    """Recognizes text with the tesseract binary through pytesseract.

    Each call spawns its own tesseract process, so no engine state is shared
    between threads.
    """

    def __init__(self, language: str = "eng", psm: str = "3") -> None:
        self._language = language
        self._config = f"--psm {psm}"

    def recognize(self, image_path: Path, timeout: float) -> str:
        try:
            return pytesseract.image_to_string(
                str(image_path),
                lang=self._language,
                config=self._config,
                timeout=max(1, int(timeout)),
            )
        except RuntimeError as exc:
            # pytesseract signals its own timeout as a bare RuntimeError
            raise RecognitionFailure(f"tesseract failed: {exc}") from exc
        except (pytesseract.TesseractError, OSError) as exc:
            raise RecognitionFailure(f"tesseract failed: {exc}") from exc
