import base64
import json
from dataclasses import asdict
from typing import Any

from docpipe.processor.models import Attachment, ProcessingStep, Query, QueryMetadata


def to_dict(query: Query) -> dict[str, Any]:
    """JSON-ready dict of a Query; attachment bytes are base64 encoded."""
    payload = asdict(query)
    payload["attachments"] = [
        {"page": attachment.page, "data": base64.b64encode(attachment.data).decode("ascii")}
        for attachment in query.attachments
    ]
    return payload


def to_json(query: Query, indent: int | None = 2) -> str:
    return json.dumps(to_dict(query), indent=indent, ensure_ascii=False)


def from_dict(payload: dict[str, Any]) -> Query:
    metadata = payload.get("metadata") or {}
    return Query(
        file_type=payload.get("file_type", ""),
        file_path=payload["file_path"],
        strategy=payload.get("strategy", ""),
        prompt_parts=list(payload.get("prompt_parts", [])),
        attachments=[
            Attachment(page=item["page"], data=base64.b64decode(item["data"]))
            for item in payload.get("attachments", [])
        ],
        system=payload.get("system", ""),
        prompt=payload.get("prompt", ""),
        metadata=QueryMetadata(
            started_at=metadata.get("started_at", 0),
            completed_at=metadata.get("completed_at", 0),
            total_duration_ms=metadata.get("total_duration_ms", 0),
            original_file_size=metadata.get("original_file_size", 0),
            errors=list(metadata.get("errors", [])),
            steps=[ProcessingStep(**step) for step in metadata.get("steps", [])],
        ),
    )
