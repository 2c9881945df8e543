import enum
from pathlib import Path

from docpipe.processor.exceptions import UnsupportedFormatError


class Strategy(str, enum.Enum):
    """Processing path selected from a document's file type."""

    TEXT = "text"
    SPREADSHEET = "spreadsheet"
    PDF = "pdf"
    OFFICE = "office"
    IMAGE = "image"


EXTENSIONS: dict[Strategy, frozenset[str]] = {
    Strategy.TEXT: frozenset({"txt", "text", "md", "html", "htm", "log"}),
    Strategy.SPREADSHEET: frozenset({"csv", "tsv", "xlsx", "xlsm", "ods"}),
    Strategy.PDF: frozenset({"pdf"}),
    Strategy.OFFICE: frozenset({"docx", "docm", "odt", "rtf", "pptx", "pptm", "odp"}),
    Strategy.IMAGE: frozenset({"bmp", "gif", "jpg", "jpeg", "png", "tiff", "tif", "webp"}),
}

SUPPORTED_EXTENSIONS = frozenset().union(*EXTENSIONS.values())


def file_type_from_path(file_path: str) -> str:
    """Return the lowercase extension of ``file_path`` without the dot."""
    return Path(file_path).suffix.lstrip(".").lower()


def select_strategy(file_type: str) -> Strategy:
    """Map a file type tag to its strategy.

    Raises:
        UnsupportedFormatError: if the type is not in the extension table.
    """
    tag = file_type.strip().lstrip(".").lower()
    for strategy, extensions in EXTENSIONS.items():
        if tag in extensions:
            return strategy
    raise UnsupportedFormatError(f"Unsupported file type: '{file_type}'")
