import shutil

import pytest
import pytesseract


@pytest.fixture(scope="session")
def tesseract_available() -> None:
    if shutil.which(pytesseract.pytesseract.tesseract_cmd) is None:
        pytest.skip("tesseract binary not installed")
