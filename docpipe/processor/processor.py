import asyncio
import os
import time
from collections.abc import Iterable, Mapping, Sequence

from docpipe.config.settings import Settings
from docpipe.logging.logger import Log
from docpipe.ocr.factory import OcrEngineFactory
from docpipe.pdf.factory import PdfBackendFactory
from docpipe.processor.exceptions import FileReadError, ProcessorError
from docpipe.processor.governor import ResourceGovernor
from docpipe.processor.models import OutcomeKind, ProcessorResult, Query, StepOutcome
from docpipe.processor.pipeline import PipelineStep
from docpipe.processor.strategy import Strategy, file_type_from_path, select_strategy
from docpipe.quality.models import QualityThresholds
from docpipe.steps.image import ImageSource, ImageStep
from docpipe.steps.ocr import OCRStep
from docpipe.steps.office import OfficeStep
from docpipe.steps.pdf import PDFStep
from docpipe.steps.spreadsheet import SpreadsheetStep
from docpipe.steps.text import TextStep


class Processor:
    """Runs the step chain selected for a document's strategy.

    Steps run one after another; each sees the Query as merged so far. A failed
    step is recorded, and the chain stops when the step is fatal or the error
    type is (timeout, memory ceiling, buffer mismatch).
    """

    def __init__(
        self,
        settings: Settings,
        chains: Mapping[Strategy, Sequence[PipelineStep]],
        governor: ResourceGovernor | None = None,
    ) -> None:
        self._settings = settings
        self._chains = chains
        self._governor = governor if governor is not None else ResourceGovernor(settings)

    async def process(self, query: Query) -> ProcessorResult:
        """Process one document to completion or to its first fatal error."""
        metadata = query.metadata
        metadata.started_at = _epoch_ms()
        started = time.perf_counter()
        error: ProcessorError | None = None
        try:
            error = await self._run_chain(query)
        finally:
            metadata.completed_at = max(metadata.started_at, _epoch_ms())
            metadata.total_duration_ms = int((time.perf_counter() - started) * 1000)

        if error is None:
            Log.info(
                f"Processed {query.file_path} in {metadata.total_duration_ms}ms: "
                f"{len(query.prompt_parts)} parts, {len(query.attachments)} attachments, "
                f"{len(metadata.errors)} errors"
            )
        else:
            Log.error(f"Processing {query.file_path} stopped: {error}")
        return ProcessorResult(query=query, error=error)

    def process_sync(self, query: Query) -> ProcessorResult:
        return asyncio.run(self.process(query))

    async def process_many(self, queries: Iterable[Query]) -> list[ProcessorResult]:
        """Process several documents concurrently, one task per Query."""
        return list(await asyncio.gather(*(self.process(query) for query in queries)))

    def close(self) -> None:
        self._governor.close()

    async def _run_chain(self, query: Query) -> ProcessorError | None:
        metadata = query.metadata
        if not query.file_type:
            query.file_type = file_type_from_path(query.file_path)
        try:
            strategy = select_strategy(query.file_type)
        except ProcessorError as exc:
            metadata.errors.append(str(exc))
            return exc
        query.strategy = strategy.value

        try:
            metadata.original_file_size = os.stat(query.file_path).st_size
        except OSError as exc:
            error = FileReadError(f"Cannot read {query.file_path}: {exc.strerror or exc}")
            metadata.errors.append(str(error))
            return error

        steps = self._chains.get(strategy, ())
        Log.info(
            f"Processing {query.file_path} as {strategy.value}: "
            f"{' -> '.join(step.name for step in steps)}"
        )
        deadline = self._governor.new_deadline()
        for step in steps:
            outcome, record = await self._governor.execute(step, query, deadline)
            metadata.steps.append(record)
            _merge(query, step, outcome)
            Log.info(f"Step {step.name}: {record.status} in {record.duration_ms}ms")
            if outcome.kind is OutcomeKind.FAILED and outcome.error is not None:
                if step.fatal or outcome.error.fatal:
                    return outcome.error
                Log.warning(f"Step {step.name} failed, continuing: {outcome.error}")
        return None


def _merge(query: Query, step: PipelineStep, outcome: StepOutcome) -> None:
    """Apply a step's outcome to the Query; failed outcomes only add errors."""
    errors = query.metadata.errors
    errors.extend(f"{step.name}: {message}" for message in outcome.errors)
    if outcome.kind is OutcomeKind.FAILED:
        if outcome.error is not None:
            errors.append(f"{step.name}: {outcome.error}")
        return
    query.prompt_parts.extend(outcome.prompt_parts)
    if outcome.replace_attachments:
        query.attachments = list(outcome.attachments)
    else:
        query.attachments.extend(outcome.attachments)


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


def build_chains(settings: Settings) -> dict[Strategy, list[PipelineStep]]:
    """Default step chain for every strategy."""
    thresholds = QualityThresholds.from_settings(settings)
    ocr_engine = OcrEngineFactory.create(settings)
    pdf_backend = PdfBackendFactory.create(settings)
    ocr_step = OCRStep(ocr_engine, thresholds, timeout_seconds=settings.timeout_seconds)
    return {
        Strategy.TEXT: [TextStep()],
        Strategy.SPREADSHEET: [
            SpreadsheetStep(max_rows=settings.max_rows, max_cols=settings.max_cols)
        ],
        Strategy.OFFICE: [OfficeStep()],
        Strategy.PDF: [
            PDFStep(
                pdf_backend,
                render_scale=settings.pdf_render_scale,
                min_page_chars=settings.pdf_min_page_chars,
                max_rendered_pages=settings.pdf_max_rendered_pages,
            ),
            ImageStep.from_settings(settings, source=ImageSource.ATTACHMENTS),
            ocr_step,
        ],
        Strategy.IMAGE: [
            ImageStep.from_settings(settings, source=ImageSource.FILE),
            ocr_step,
        ],
    }


def build_processor(settings: Settings) -> Processor:
    """Build a Processor with the default chains and adapters."""
    return Processor(settings=settings, chains=build_chains(settings))
