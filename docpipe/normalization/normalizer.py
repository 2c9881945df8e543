"""Deterministic clean-up of extracted and recognized text.

``normalize`` is idempotent: running it on its own output changes nothing.
It never reorders text and only removes content that is recognisably a scan
artifact (punctuation debris, page-number lines).
"""

import re
import unicodedata

_LINE_BREAK_RE = re.compile(r"\r\n|[\r\v\f\x85\u2028\u2029]")
_HORIZONTAL_SPACE_RE = re.compile(r"[^\S\n]+")
_BREAK_RUN_RE = re.compile(r" ?\n\s*")
_PUNCT_TOKEN_RE = re.compile(r"^[^\w\s]{3,}$|^_{3,}$")
_PAGE_NUMBER_RE = re.compile(
    r"^(?:page\s*)?[-\u2013\u2014(\[]?\s*\d{1,4}\s*[-\u2013\u2014)\]]?(?:\s*(?:of|/)\s*\d{1,4})?$",
    re.IGNORECASE,
)
_KEEP_CONTROLS = frozenset("\n\t")


def normalize(text: str) -> str:
    """Normalize whitespace, line breaks, control characters and scan artifacts."""
    text = standardize_line_breaks(text)
    text = strip_control_chars(text)
    text = collapse_whitespace(text)
    text = remove_scan_artifacts(text)
    return collapse_whitespace(text)


def standardize_line_breaks(text: str) -> str:
    return _LINE_BREAK_RE.sub("\n", text)


def strip_control_chars(text: str) -> str:
    return "".join(
        ch for ch in text if ch in _KEEP_CONTROLS or unicodedata.category(ch) not in ("Cc", "Cf")
    )


def collapse_whitespace(text: str) -> str:
    """Horizontal runs become one space; any run holding a newline becomes one newline."""
    text = _HORIZONTAL_SPACE_RE.sub(" ", text)
    text = _BREAK_RUN_RE.sub("\n", text)
    return text.strip()


def remove_scan_artifacts(text: str) -> str:
    lines = []
    for line in text.split("\n"):
        tokens = [token for token in line.split(" ") if not _PUNCT_TOKEN_RE.match(token)]
        cleaned = " ".join(tokens).strip()
        if not cleaned or _is_artifact_line(cleaned):
            continue
        lines.append(cleaned)
    return "\n".join(lines)


def _is_artifact_line(line: str) -> bool:
    if not any(ch.isalnum() for ch in line):
        return True
    return bool(_PAGE_NUMBER_RE.match(line))
