import enum
from dataclasses import dataclass, field

from docpipe.processor.exceptions import ProcessorError


class StepStatus(str, enum.Enum):
    """Status recorded on a ProcessingStep."""

    SUCCESS = "success"
    WARNING = "warning"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass
class Attachment:
    """Binary artifact carried alongside extracted text (usually a PNG page)."""

    page: int
    data: bytes


@dataclass(frozen=True)
class ProcessingStep:
    """Timing and outcome of a single step attempt."""

    name: str
    duration_ms: int
    status: str
    memory_mb: int


@dataclass
class QueryMetadata:
    """Timing, size and audit trail for one processed document."""

    started_at: int = 0
    completed_at: int = 0
    total_duration_ms: int = 0
    original_file_size: int = 0
    errors: list[str] = field(default_factory=list)
    steps: list[ProcessingStep] = field(default_factory=list)


@dataclass
class Query:
    """The unit of work: one document moving through the pipeline."""

    file_path: str
    file_type: str = ""
    strategy: str = ""
    prompt_parts: list[str] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)
    system: str = ""
    prompt: str = ""
    metadata: QueryMetadata = field(default_factory=QueryMetadata)


class OutcomeKind(str, enum.Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StepOutcome:
    """What a step produced. Only the Processor merges it into the Query."""

    kind: OutcomeKind
    prompt_parts: list[str] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)
    replace_attachments: bool = False
    errors: list[str] = field(default_factory=list)
    error: ProcessorError | None = None

    @classmethod
    def completed(
        cls,
        prompt_parts: list[str] | None = None,
        attachments: list[Attachment] | None = None,
        errors: list[str] | None = None,
        *,
        replace_attachments: bool = False,
    ) -> "StepOutcome":
        """Build a completed outcome, downgraded to a warning when errors exist."""
        errors = errors or []
        kind = OutcomeKind.COMPLETED_WITH_WARNINGS if errors else OutcomeKind.COMPLETED
        return cls(
            kind=kind,
            prompt_parts=prompt_parts or [],
            attachments=attachments or [],
            replace_attachments=replace_attachments,
            errors=errors,
        )

    @classmethod
    def failed(cls, error: ProcessorError, errors: list[str] | None = None) -> "StepOutcome":
        return cls(kind=OutcomeKind.FAILED, errors=errors or [], error=error)

    @classmethod
    def skipped(cls) -> "StepOutcome":
        return cls(kind=OutcomeKind.SKIPPED)

    @property
    def status(self) -> StepStatus:
        return {
            OutcomeKind.COMPLETED: StepStatus.SUCCESS,
            OutcomeKind.COMPLETED_WITH_WARNINGS: StepStatus.WARNING,
            OutcomeKind.FAILED: StepStatus.FAILURE,
            OutcomeKind.SKIPPED: StepStatus.SKIPPED,
        }[self.kind]


@dataclass
class ProcessorResult:
    """Completed Query plus the terminal error, if the chain stopped on one."""

    query: Query
    error: ProcessorError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
