import asyncio
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from docpipe.config.settings import Settings
from docpipe.processor.exceptions import (
    BufferMismatchError,
    ContainerOpenError,
    DecodeError,
    FileReadError,
    StepTimeoutError,
    UnsupportedFormatError,
)
from docpipe.processor.governor import Budget
from docpipe.processor.models import (
    Attachment,
    OutcomeKind,
    ProcessorResult,
    Query,
    StepOutcome,
)
from docpipe.processor.pipeline import PipelineStep
from docpipe.processor.processor import Processor, build_chains
from docpipe.processor.strategy import Strategy

WriteFile = Callable[[str, bytes | str], Path]


class StaticStep(PipelineStep):
    def __init__(self, name: str, outcome: StepOutcome, fatal: bool = True) -> None:
        self.name = name
        self.fatal = fatal
        self._outcome = outcome
        self.calls = 0

    def run(self, query: Query, budget: Budget) -> StepOutcome:
        self.calls += 1
        return self._outcome


class SpinStep(PipelineStep):
    name = "spin"

    def run(self, query: Query, budget: Budget) -> StepOutcome:
        while True:
            budget.check()
            time.sleep(0.01)


def _parts(name: str, *parts: str) -> StaticStep:
    return StaticStep(name, StepOutcome.completed(prompt_parts=list(parts)))


def _run(settings: Settings, steps: list[PipelineStep], query: Query) -> ProcessorResult:
    processor = Processor(settings, {Strategy.TEXT: steps})
    try:
        return processor.process_sync(query)
    finally:
        processor.close()


@pytest.fixture()
def text_query(write_file: WriteFile) -> Query:
    return Query(file_path=str(write_file("notes.txt", "hello")))


class TestProcessorChain:
    def test_runs_steps_in_order_and_merges(self, settings: Settings, text_query: Query) -> None:
        result = _run(settings, [_parts("first", "one"), _parts("second", "two")], text_query)

        assert result.ok
        query = result.query
        assert query.prompt_parts == ["one", "two"]
        assert query.file_type == "txt"
        assert query.strategy == "text"
        assert [s.name for s in query.metadata.steps] == ["first", "second"]
        assert query.metadata.original_file_size == 5

    def test_metadata_timing(self, settings: Settings, text_query: Query) -> None:
        result = _run(settings, [_parts("only", "x")], text_query)
        metadata = result.query.metadata
        assert metadata.started_at > 0
        assert metadata.completed_at >= metadata.started_at
        assert metadata.total_duration_ms >= 0
        assert len(metadata.steps) >= 1

    def test_fatal_failure_stops_chain(self, settings: Settings, text_query: Query) -> None:
        failing = StaticStep("broken", StepOutcome.failed(DecodeError("boom")), fatal=True)
        after = _parts("after", "never")
        result = _run(settings, [_parts("before", "kept"), failing, after], text_query)

        assert isinstance(result.error, DecodeError)
        assert result.query.prompt_parts == ["kept"]
        assert result.query.metadata.errors == ["broken: boom"]
        assert [s.status for s in result.query.metadata.steps] == ["success", "failure"]
        assert after.calls == 0

    def test_non_fatal_failure_continues(self, settings: Settings, text_query: Query) -> None:
        failing = StaticStep("optional", StepOutcome.failed(DecodeError("meh")), fatal=False)
        result = _run(settings, [failing, _parts("after", "done")], text_query)

        assert result.ok
        assert result.query.prompt_parts == ["done"]
        assert result.query.metadata.errors == ["optional: meh"]
        assert len(result.query.metadata.steps) == 2

    def test_fatal_error_type_stops_non_fatal_step(
        self, settings: Settings, text_query: Query
    ) -> None:
        failing = StaticStep(
            "render", StepOutcome.failed(BufferMismatchError("size")), fatal=False
        )
        result = _run(settings, [failing, _parts("after", "never")], text_query)
        assert isinstance(result.error, BufferMismatchError)
        assert len(result.query.metadata.steps) == 1

    def test_failed_outcome_output_is_discarded(
        self, settings: Settings, text_query: Query
    ) -> None:
        partial = StepOutcome(
            kind=OutcomeKind.FAILED, prompt_parts=["partial"], error=DecodeError("x")
        )
        result = _run(settings, [StaticStep("half", partial, fatal=False)], text_query)
        assert result.query.prompt_parts == []

    def test_step_warnings_are_prefixed(self, settings: Settings, text_query: Query) -> None:
        warn = StaticStep("pdf", StepOutcome.completed(prompt_parts=["p"], errors=["page 3: bad"]))
        result = _run(settings, [warn], text_query)
        assert result.query.metadata.errors == ["pdf: page 3: bad"]
        assert result.query.metadata.steps[0].status == "warning"

    def test_attachments_replace_and_extend(self, settings: Settings, text_query: Query) -> None:
        render = StaticStep(
            "render",
            StepOutcome.completed(
                attachments=[Attachment(page=1, data=b"a"), Attachment(page=2, data=b"b")]
            ),
        )
        optimize = StaticStep(
            "optimize",
            StepOutcome.completed(
                attachments=[Attachment(page=2, data=b"B")], replace_attachments=True
            ),
        )
        extra = StaticStep(
            "extra", StepOutcome.completed(attachments=[Attachment(page=3, data=b"c")])
        )
        result = _run(settings, [render, optimize, extra], text_query)
        assert [(a.page, a.data) for a in result.query.attachments] == [(2, b"B"), (3, b"c")]

    def test_skipped_step_recorded(self, settings: Settings, text_query: Query) -> None:
        result = _run(settings, [StaticStep("ocr", StepOutcome.skipped())], text_query)
        assert result.query.metadata.steps[0].status == "skipped"

    def test_timeout_keeps_prior_output(self, settings: Settings, text_query: Query) -> None:
        settings = settings.model_copy(update={"timeout_seconds": 0.5})
        result = _run(settings, [_parts("text", "kept"), SpinStep()], text_query)

        assert isinstance(result.error, StepTimeoutError)
        assert result.query.prompt_parts == ["kept"]
        assert result.query.metadata.steps[-1].name == "spin"
        assert result.query.metadata.steps[-1].status == "failure"

    def test_temp_dirs_removed_after_process(
        self, settings: Settings, text_query: Query
    ) -> None:
        _run(settings, [_parts("a", "x"), _parts("b", "y")], text_query)
        assert list(Path(settings.temp_dir).iterdir()) == []


class TestProcessorInputErrors:
    def test_unsupported_format(self, settings: Settings, write_file: WriteFile) -> None:
        step = _parts("never", "x")
        query = Query(file_path=str(write_file("archive.xyz", b"data")))
        result = _run(settings, [step], query)

        assert isinstance(result.error, UnsupportedFormatError)
        assert result.query.metadata.steps == []
        assert result.query.metadata.errors == ["Unsupported file type: 'xyz'"]
        assert result.query.metadata.completed_at >= result.query.metadata.started_at
        assert step.calls == 0

    def test_missing_file(self, settings: Settings, tmp_path: Path) -> None:
        query = Query(file_path=str(tmp_path / "missing.txt"))
        result = _run(settings, [_parts("never", "x")], query)
        assert isinstance(result.error, FileReadError)
        assert result.query.metadata.steps == []

    def test_unopenable_workbook_is_terminal(
        self, settings: Settings, write_file: WriteFile
    ) -> None:
        query = Query(file_path=str(write_file("broken.xlsx", b"this is not a zip container")))
        processor = Processor(settings, build_chains(settings))
        try:
            result = processor.process_sync(query)
        finally:
            processor.close()

        assert isinstance(result.error, ContainerOpenError)
        assert not result.ok
        assert result.query.prompt_parts == []
        assert result.query.metadata.steps[0].status == "failure"
        assert result.query.metadata.errors[0].startswith("spreadsheet: workbook unreadable")

    def test_unusable_temp_dir_is_reported(
        self, settings: Settings, text_query: Query, tmp_path: Path
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("a regular file")
        settings = settings.model_copy(update={"temp_dir": str(blocker / "sub")})
        step = _parts("never", "x")
        result = _run(settings, [step], text_query)

        assert isinstance(result.error, FileReadError)
        assert "Cannot create scratch directory" in str(result.error)
        assert step.calls == 0
        assert result.query.metadata.steps[0].name == "never"
        assert result.query.metadata.steps[0].status == "failure"
        assert result.query.metadata.completed_at >= result.query.metadata.started_at

    def test_explicit_file_type_wins(self, settings: Settings, write_file: WriteFile) -> None:
        query = Query(file_path=str(write_file("notes.dat", "hi")), file_type="txt")
        result = _run(settings, [_parts("t", "x")], query)
        assert result.ok
        assert result.query.strategy == "text"


class TestProcessMany:
    def test_processes_each_query(self, settings: Settings, write_file: WriteFile) -> None:
        queries = [
            Query(file_path=str(write_file(f"doc{i}.txt", f"content {i}"))) for i in range(3)
        ]
        processor = Processor(settings, {Strategy.TEXT: [_parts("t", "x")]})
        try:
            results = asyncio.run(processor.process_many(queries))
        finally:
            processor.close()

        assert [r.query.file_path for r in results] == [q.file_path for q in queries]
        assert all(r.ok for r in results)
        assert all(r.query.prompt_parts == ["x"] for r in results)


class TestBuildChains:
    def test_step_names_per_strategy(self, settings: Settings) -> None:
        chains = build_chains(settings)
        names = {strategy: [step.name for step in steps] for strategy, steps in chains.items()}
        assert names == {
            Strategy.TEXT: ["text"],
            Strategy.SPREADSHEET: ["spreadsheet"],
            Strategy.OFFICE: ["office"],
            Strategy.PDF: ["pdf", "image", "ocr"],
            Strategy.IMAGE: ["image", "ocr"],
        }

    def test_image_step_fatality_depends_on_source(self, settings: Settings) -> None:
        chains = build_chains(settings)
        assert chains[Strategy.IMAGE][0].fatal is True
        assert chains[Strategy.PDF][1].fatal is False
