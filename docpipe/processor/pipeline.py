from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from docpipe.processor.models import Query, StepOutcome

if TYPE_CHECKING:
    from docpipe.processor.governor import Budget


class PipelineStep(ABC):
    """One stage of a strategy chain.

    ``run`` executes on a worker thread. It may read the Query but must not
    mutate it; everything it produces travels back in the StepOutcome.
    ``fatal`` decides whether a failed outcome stops the rest of the chain.
    """

    name: str
    fatal: bool = True

    @abstractmethod
    def run(self, query: Query, budget: "Budget") -> StepOutcome:
        raise NotImplementedError


def format_extracted_data(text: str, **attrs: object) -> str:
    return f"<EXTRACTED_DATA{_format_attrs(attrs)}>{text}</EXTRACTED_DATA>"


def format_ocr_text(text: str, page: int, *, low_quality: bool = False) -> str:
    quality = ' QUALITY="low"' if low_quality else ""
    return f"<OCR PAGE={page}{quality}>{text}</OCR>"


def _format_attrs(attrs: dict[str, object]) -> str:
    parts = []
    for key, value in attrs.items():
        if isinstance(value, str):
            escaped = value.replace('"', "'")
            parts.append(f'{key.upper()}="{escaped}"')
        else:
            parts.append(f"{key.upper()}={value}")
    return "".join(f" {part}" for part in parts)
