from abc import ABC, abstractmethod

from PIL import Image

from docpipe.processor.exceptions import BufferMismatchError

_MODES = {1: "L", 3: "RGB", 4: "RGBA"}


class BasePdfBackend(ABC):
    """Contract for PDF text extraction and page rendering adapters.

    Implementations open the document per call, so calls for different pages
    may run on different threads at once.
    """

    @abstractmethod
    def page_texts(self, pdf_bytes: bytes) -> list[str]:
        """Extract embedded text for every page, in page order.

        Raises:
            PdfExtractionError: if the document cannot be opened or read.
        """

    @abstractmethod
    def render_page(self, pdf_bytes: bytes, page_index: int, scale: float) -> Image.Image:
        """Render one 0-based page at ``scale`` (1.0 = 72 dpi).

        Raises:
            PdfExtractionError: if the page cannot be rendered.
            BufferMismatchError: if the rendered buffer disagrees with its size.
        """


def image_from_samples(
    width: int, height: int, channels: int, stride: int, samples: bytes
) -> Image.Image:
    """Wrap a raw pixel buffer, refusing buffers whose size disagrees with the header."""
    mode = _MODES.get(channels)
    if mode is None:
        raise BufferMismatchError(f"Unsupported channel count {channels}")
    if stride < width * channels or len(samples) != stride * height:
        raise BufferMismatchError(
            f"Pixel buffer of {len(samples)} bytes does not match "
            f"{width}x{height}x{channels} (stride {stride})"
        )
    return Image.frombuffer(mode, (width, height), samples, "raw", mode, stride, 1).copy()
