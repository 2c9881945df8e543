from docpipe.processor.exceptions import DecodeError


class PdfExtractionError(DecodeError):
    """Raised when a PDF cannot be opened, read or rendered."""
