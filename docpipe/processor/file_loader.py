from pathlib import Path

from docpipe.processor.exceptions import FileReadError
from docpipe.processor.models import Query


class FileLoader:
    """Reads the bytes of the document a Query points at."""

    def load(self, query: Query) -> bytes:
        """Read document bytes from disk.

        Raises:
            FileReadError: if the file does not exist or cannot be read.
        """
        path = Path(query.file_path)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise FileReadError(f"Cannot read {path}: {exc.strerror or exc}") from exc
