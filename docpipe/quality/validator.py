"""Heuristic quality checks for recognized text.

Three checks are hard limits (character validity, special characters, word
count). The rest are weighted soft signals; their combined weight lowers the
confidence, and a verdict passes only if confidence stays at or above
``min_confidence``. Validation never raises: a failing verdict is data.
"""

import re
from dataclasses import dataclass

from docpipe.normalization.normalizer import normalize
from docpipe.quality.models import DEFAULT_THRESHOLDS, QualityThresholds, QualityVerdict

_COMMON_PUNCTUATION = ".,;:'\"()-!?"
_REPEAT_EXEMPT = frozenset("xX0")
_LETTERS = r"[^\W\d_]"
_WORD_LIKE_RE = re.compile(rf"^{_LETTERS}+(?:['-]{_LETTERS}+)*(?:\d+{_LETTERS}*)?$")
_EMBEDDED_DIGITS_RE = re.compile(rf"(?<={_LETTERS})\d+(?={_LETTERS})")

_SOFT_WEIGHTS: dict[str, float] = {
    "word_like": 0.30,
    "artifacts": 0.25,
    "single_char": 0.20,
    "avg_length": 0.15,
    "long_words": 0.10,
}
_DOMINANT_RATIO = 0.5


@dataclass(frozen=True)
class _TextStats:
    total_chars: int
    valid_chars: int
    non_space_chars: int
    special_chars: int
    words: list[str]


def validate(text: str, thresholds: QualityThresholds = DEFAULT_THRESHOLDS) -> QualityVerdict:
    """Judge whether ``text`` looks like real language rather than OCR noise."""
    cleaned = normalize(text)
    stats = _collect_stats(cleaned)
    if not stats.words:
        return QualityVerdict(passed=False, confidence=0.0, cleaned_text=cleaned, reasons=("empty text",))

    hard = _hard_failures(stats, thresholds)
    soft, long_ratio = _soft_signals(stats.words, thresholds)
    if long_ratio > _DOMINANT_RATIO:
        hard.append(f"over-long words dominate ({long_ratio:.2f})")

    penalty = sum(_SOFT_WEIGHTS[name] for name in soft)
    confidence = 0.0 if hard else round(max(0.0, 1.0 - penalty), 4)
    passed = not hard and confidence >= thresholds.min_confidence
    reasons = tuple(hard) + tuple(soft.values())
    return QualityVerdict(passed=passed, confidence=confidence, cleaned_text=cleaned, reasons=reasons)


def _collect_stats(text: str) -> _TextStats:
    words = text.split()
    valid = sum(1 for ch in text if _is_valid_char(ch))
    non_space = sum(1 for ch in text if not ch.isspace())
    symbols = sum(1 for ch in text if not ch.isspace() and not _is_valid_char(ch))
    substitutions = sum(_embedded_digits(word) for word in words)
    return _TextStats(
        total_chars=len(text),
        valid_chars=valid,
        non_space_chars=non_space,
        special_chars=symbols + substitutions,
        words=words,
    )


def _hard_failures(stats: _TextStats, t: QualityThresholds) -> list[str]:
    failures = []
    valid_ratio = stats.valid_chars / stats.total_chars
    if valid_ratio < t.min_valid_char_ratio:
        failures.append(f"valid character ratio {valid_ratio:.2f} < {t.min_valid_char_ratio}")
    special_ratio = stats.special_chars / stats.non_space_chars if stats.non_space_chars else 0.0
    if special_ratio > t.max_special_char_ratio:
        failures.append(f"special character ratio {special_ratio:.2f} > {t.max_special_char_ratio}")
    if len(stats.words) < t.min_word_count:
        failures.append(f"word count {len(stats.words)} < {t.min_word_count}")
    return failures


def _soft_signals(words: list[str], t: QualityThresholds) -> tuple[dict[str, str], float]:
    """Return tripped soft signals keyed by weight name, plus the long-word ratio."""
    count = len(words)
    signals: dict[str, str] = {}

    long_ratio = sum(1 for w in words if len(w) > t.max_word_length) / count
    if long_ratio > t.max_long_word_ratio:
        signals["long_words"] = f"long word ratio {long_ratio:.2f} > {t.max_long_word_ratio}"

    avg_length = sum(len(w) for w in words) / count
    if not t.min_avg_word_length <= avg_length <= t.max_avg_word_length:
        signals["avg_length"] = (
            f"average word length {avg_length:.1f} outside "
            f"[{t.min_avg_word_length}, {t.max_avg_word_length}]"
        )

    single_ratio = sum(1 for w in words if len(w) == 1) / count
    if single_ratio > t.max_single_char_ratio:
        signals["single_char"] = (
            f"single-character word ratio {single_ratio:.2f} > {t.max_single_char_ratio}"
        )

    word_like_ratio = sum(1 for w in words if _is_word_like(w)) / count
    if word_like_ratio < t.min_word_like_ratio:
        signals["word_like"] = f"word-like ratio {word_like_ratio:.2f} < {t.min_word_like_ratio}"

    repeat_re = re.compile(rf"(.)\1{{{t.repeat_run_length - 1},}}")
    artifact_ratio = sum(1 for w in words if _has_repeat_run(w, repeat_re)) / count
    if artifact_ratio > t.max_artifact_ratio:
        signals["artifacts"] = (
            f"repeated-character word ratio {artifact_ratio:.2f} > {t.max_artifact_ratio}"
        )
    return signals, long_ratio


def _is_valid_char(ch: str) -> bool:
    return ch.isalnum() or ch.isspace() or ch in _COMMON_PUNCTUATION


def _embedded_digits(word: str) -> int:
    """Digits with a letter on both sides, e.g. OCR reading 'o' as '0' in 'br0wn'.

    Trailing version numbers such as 'Win11' are not counted.
    """
    return sum(len(run) for run in _EMBEDDED_DIGITS_RE.findall(word))


def _is_word_like(word: str) -> bool:
    return bool(_WORD_LIKE_RE.match(word.strip(_COMMON_PUNCTUATION)))


def _has_repeat_run(word: str, repeat_re: re.Pattern[str]) -> bool:
    return any(match.group(1) not in _REPEAT_EXEMPT for match in repeat_re.finditer(word))
