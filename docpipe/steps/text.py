from docpipe.logging.logger import Log
from docpipe.normalization.normalizer import normalize
from docpipe.processor.exceptions import DecodeError
from docpipe.processor.file_loader import FileLoader
from docpipe.processor.governor import Budget
from docpipe.processor.models import Query, StepOutcome
from docpipe.processor.pipeline import PipelineStep, format_extracted_data


class TextStep(PipelineStep):
    name = "text"
    fatal = True

    def __init__(self, file_loader: FileLoader | None = None) -> None:
        self._file_loader = file_loader if file_loader is not None else FileLoader()

    def run(self, query: Query, budget: Budget) -> StepOutcome:
        raw_bytes = self._file_loader.load(query)
        try:
            text = raw_bytes.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise DecodeError(
                f"{query.file_path} is not valid UTF-8 ({exc.reason} at byte {exc.start})"
            ) from exc
        budget.check()

        text = normalize(text)
        Log.info(f"Read {len(raw_bytes)} bytes, {len(text)} chars of text from {query.file_path}")
        if not text:
            return StepOutcome.completed(errors=["document contains no text"])
        return StepOutcome.completed(prompt_parts=[format_extracted_data(text)])
