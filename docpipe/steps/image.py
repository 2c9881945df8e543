"""Image decoding and size optimization for attachments.

Every image leaves this step as a PNG: flattened onto white, no larger than
``max_dimension`` on its longest side, and, with compression on, re-scaled
once when the encoding exceeds the target size.
"""

import enum
import io
import math

from PIL import Image, ImageSequence, UnidentifiedImageError

from docpipe.config.settings import Settings
from docpipe.logging.logger import Log
from docpipe.processor.exceptions import ImageProcessingError
from docpipe.processor.file_loader import FileLoader
from docpipe.processor.governor import Budget
from docpipe.processor.models import Attachment, Query, StepOutcome
from docpipe.processor.pipeline import PipelineStep

_MB = 1024 * 1024
_MAX_RESCALE = 0.95


class ImageSource(str, enum.Enum):
    FILE = "file"
    ATTACHMENTS = "attachments"


class ImageStep(PipelineStep):
    """Optimizes the input image file, or the attachments earlier steps produced.

    Reading from the file is fatal on failure; re-optimizing attachments only
    records the attachments it had to drop.
    """

    name = "image"

    def __init__(
        self,
        source: ImageSource = ImageSource.FILE,
        max_dimension: int = 1600,
        max_image_size_mb: float = 3.0,
        target_image_size_mb: float = 2.0,
        compression: bool = True,
        file_loader: FileLoader | None = None,
    ) -> None:
        self.source = source
        self.fatal = source is ImageSource.FILE
        self._max_dimension = max_dimension
        self._max_size = int(max_image_size_mb * _MB)
        self._target_size = int(target_image_size_mb * _MB)
        self._compression = compression
        self._file_loader = file_loader if file_loader is not None else FileLoader()

    @classmethod
    def from_settings(cls, settings: Settings, source: ImageSource) -> "ImageStep":
        return cls(
            source=source,
            max_dimension=settings.max_image_dimension,
            max_image_size_mb=settings.max_image_size_mb,
            target_image_size_mb=settings.target_image_size_mb,
            compression=settings.image_compression,
        )

    def run(self, query: Query, budget: Budget) -> StepOutcome:
        if self.source is ImageSource.FILE:
            return self._run_file(query, budget)
        return self._run_attachments(query, budget)

    def _run_file(self, query: Query, budget: Budget) -> StepOutcome:
        frames = decode_frames(self._file_loader.load(query))
        Log.info(f"Decoded {len(frames)} frames from {query.file_path}")
        encoded = budget.map_ordered(self.optimize, frames)
        attachments = [
            Attachment(page=number, data=data) for number, data in enumerate(encoded, start=1)
        ]
        return StepOutcome.completed(attachments=attachments)

    def _run_attachments(self, query: Query, budget: Budget) -> StepOutcome:
        if not query.attachments:
            return StepOutcome.skipped()
        results = budget.map_ordered(self._reoptimize, query.attachments)
        attachments: list[Attachment] = []
        errors: list[str] = []
        for attachment, error in results:
            if error is not None:
                errors.append(error)
            else:
                attachments.append(attachment)
        Log.info(f"Optimized {len(attachments)} of {len(query.attachments)} attachments")
        return StepOutcome.completed(attachments=attachments, errors=errors, replace_attachments=True)

    def _reoptimize(self, attachment: Attachment) -> tuple[Attachment, str | None]:
        try:
            frames = decode_frames(attachment.data)
            data = self.optimize(frames[0])
        except ImageProcessingError as exc:
            Log.warning(f"Attachment for page {attachment.page} dropped: {exc}")
            return attachment, f"page {attachment.page}: {exc}"
        return Attachment(page=attachment.page, data=data), None

    def optimize(self, image: Image.Image) -> bytes:
        """Flatten, bound and encode one image as PNG.

        Raises:
            ImageProcessingError: if the result is still above the size limit.
        """
        try:
            image = flatten(image)
            if max(image.size) > self._max_dimension:
                image.thumbnail((self._max_dimension, self._max_dimension), Image.Resampling.BOX)
            data = encode_png(image, optimize=self._compression)
            if self._compression and len(data) > self._target_size:
                scale = min(_MAX_RESCALE, math.sqrt(self._target_size / len(data)))
                size = (max(1, int(image.width * scale)), max(1, int(image.height * scale)))
                Log.debug(f"Encoded {len(data)} bytes above target, rescaling to {size}")
                data = encode_png(image.resize(size, Image.Resampling.BOX), optimize=True)
        except (OSError, ValueError) as exc:
            raise ImageProcessingError(f"image optimization failed: {exc}") from exc
        if len(data) > self._max_size:
            raise ImageProcessingError(
                f"encoded image is {len(data) / _MB:.1f}MB, "
                f"above the {self._max_size / _MB:.1f}MB limit"
            )
        return data


def decode_frames(data: bytes) -> list[Image.Image]:
    """Decode every frame of an image; single-frame formats yield one.

    Raises:
        ImageProcessingError: if the bytes are not a decodable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            frames = [frame.copy() for frame in ImageSequence.Iterator(image)]
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise ImageProcessingError(f"cannot decode image: {exc}") from exc
    if not frames:
        raise ImageProcessingError("image has no frames")
    return frames


def flatten(image: Image.Image) -> Image.Image:
    """Composite any transparency onto white; returns an RGB or L image."""
    if image.mode == "P" and "transparency" in image.info:
        image = image.convert("RGBA")
    if image.mode in ("RGBA", "LA", "PA"):
        image = image.convert("RGBA")
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(image, mask=image.getchannel("A"))
        return background
    if image.mode not in ("RGB", "L"):
        return image.convert("RGB")
    return image


def encode_png(image: Image.Image, optimize: bool) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", optimize=optimize)
    return buffer.getvalue()
