class ProcessorError(Exception):
    """Base exception for all processor-related errors.

    ``fatal`` marks errors that abort the remaining chain regardless of which
    step raised them.
    """

    fatal: bool = False


class UnsupportedFormatError(ProcessorError):
    """Raised when no strategy exists for a file type."""

    fatal = True


class FileReadError(ProcessorError):
    """Raised when a file cannot be read from disk."""

    fatal = True


class DecodeError(ProcessorError):
    """Raised when a container or its content cannot be decoded."""


class ContainerOpenError(DecodeError):
    """Raised when a container cannot be opened at all, so nothing in it is readable."""

    fatal = True


class ImageProcessingError(DecodeError):
    """Raised when an image cannot be decoded, resized or re-encoded."""


class RecognitionFailure(ProcessorError):
    """Raised when the OCR engine fails on one unit."""


class BufferMismatchError(ProcessorError):
    """Raised when a pixel buffer disagrees with its declared dimensions."""

    fatal = True


class StepTimeoutError(ProcessorError):
    """Raised when the processing deadline passes while a step is running."""

    fatal = True


class MemoryLimitExceededError(ProcessorError):
    """Raised when resident memory crosses the configured ceiling."""

    fatal = True
