"""Self-contained HTML report of a processed Query."""

import base64
import datetime
from html import escape

from docpipe.processor.models import Query

_STYLE = """
body { font-family: sans-serif; margin: 2em; color: #222; }
h1 { font-size: 1.4em; }
h2 { font-size: 1.1em; border-bottom: 1px solid #ccc; padding-bottom: .2em; }
table { border-collapse: collapse; }
td, th { border: 1px solid #ddd; padding: .3em .6em; text-align: left; }
pre { background: #f6f6f6; padding: .8em; white-space: pre-wrap; }
.errors li { color: #a00; }
figure { display: inline-block; margin: .5em; }
figure img { max-width: 480px; border: 1px solid #ccc; }
"""


def render_html(query: Query) -> str:
    sections = [
        _basic_info(query),
        _content(query),
        _attachments(query),
        _metadata(query),
        _errors(query),
        _steps(query),
    ]
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n"
        f"<title>{escape(query.file_path)}</title>\n<style>{_STYLE}</style>\n</head>\n"
        f"<body>\n<h1>Processing report</h1>\n{''.join(sections)}</body>\n</html>\n"
    )


def _basic_info(query: Query) -> str:
    rows = [
        ("File", query.file_path),
        ("Type", query.file_type),
        ("Strategy", query.strategy),
        ("Size", f"{query.metadata.original_file_size} bytes"),
        ("System prompt", query.system),
        ("Prompt", query.prompt),
    ]
    return _section("Basic information", _table(rows))


def _content(query: Query) -> str:
    if not query.prompt_parts:
        return _section("Extracted content", "<p>No content extracted.</p>")
    body = "".join(f"<pre>{escape(part)}</pre>\n" for part in query.prompt_parts)
    return _section("Extracted content", body)


def _attachments(query: Query) -> str:
    if not query.attachments:
        return ""
    figures = "".join(
        f'<figure><img src="data:image/png;base64,{base64.b64encode(a.data).decode("ascii")}" '
        f'alt="page {a.page}"><figcaption>Page {a.page}</figcaption></figure>\n'
        for a in query.attachments
    )
    return _section("Attachments", figures)


def _metadata(query: Query) -> str:
    metadata = query.metadata
    rows = [
        ("Started", _timestamp(metadata.started_at)),
        ("Completed", _timestamp(metadata.completed_at)),
        ("Total duration", f"{metadata.total_duration_ms} ms"),
    ]
    return _section("Metadata", _table(rows))


def _errors(query: Query) -> str:
    if not query.metadata.errors:
        return ""
    items = "".join(f"<li>{escape(error)}</li>" for error in query.metadata.errors)
    return _section("Errors", f'<ul class="errors">{items}</ul>')


def _steps(query: Query) -> str:
    header = "<tr><th>Step</th><th>Status</th><th>Duration</th><th>Memory</th></tr>"
    rows = "".join(
        f"<tr><td>{escape(step.name)}</td><td>{escape(step.status)}</td>"
        f"<td>{step.duration_ms} ms</td><td>{step.memory_mb} MB</td></tr>"
        for step in query.metadata.steps
    )
    return _section("Steps", f"<table>{header}{rows}</table>")


def _section(title: str, body: str) -> str:
    return f"<section>\n<h2>{escape(title)}</h2>\n{body}\n</section>\n"


def _table(rows: list[tuple[str, str]]) -> str:
    cells = "".join(
        f"<tr><th>{escape(label)}</th><td>{escape(value)}</td></tr>" for label, value in rows
    )
    return f"<table>{cells}</table>"


def _timestamp(epoch_ms: int) -> str:
    moment = datetime.datetime.fromtimestamp(epoch_ms / 1000, tz=datetime.timezone.utc)
    return moment.isoformat(timespec="milliseconds")
