from abc import ABC, abstractmethod
from pathlib import Path


class BaseOcrEngine(ABC):
    """Contract for text recognition engines.

    ``recognize`` must be safe to call from several threads at once.
    """

    @abstractmethod
    def recognize(self, image_path: Path, timeout: float) -> str:
        """Recognize text in the image at ``image_path``.

        Raises:
            RecognitionFailure: if the engine fails or exceeds ``timeout`` seconds.
        """
