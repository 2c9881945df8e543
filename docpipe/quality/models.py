from dataclasses import dataclass

from docpipe.config.settings import Settings


@dataclass(frozen=True)
class QualityThresholds:
    """Limits applied by the quality validator."""

    min_valid_char_ratio: float = 0.80
    max_special_char_ratio: float = 0.15
    min_word_count: int = 3
    max_word_length: int = 20
    min_avg_word_length: float = 2.0
    max_avg_word_length: float = 15.0
    max_single_char_ratio: float = 0.30
    min_word_like_ratio: float = 0.40
    repeat_run_length: int = 5
    max_artifact_ratio: float = 0.10
    max_long_word_ratio: float = 0.08
    min_confidence: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings) -> "QualityThresholds":
        return cls(
            min_valid_char_ratio=settings.ocr_min_valid_char_ratio,
            max_special_char_ratio=settings.ocr_max_special_char_ratio,
            min_word_count=settings.ocr_min_word_count,
            max_word_length=settings.ocr_max_word_length,
            min_avg_word_length=settings.ocr_min_avg_word_length,
            max_avg_word_length=settings.ocr_max_avg_word_length,
            max_single_char_ratio=settings.ocr_max_single_char_ratio,
            min_word_like_ratio=settings.ocr_min_word_like_ratio,
            repeat_run_length=settings.ocr_repeat_run_length,
            max_artifact_ratio=settings.ocr_max_artifact_ratio,
            max_long_word_ratio=settings.ocr_max_long_word_ratio,
            min_confidence=settings.ocr_quality_threshold,
        )


DEFAULT_THRESHOLDS = QualityThresholds()


@dataclass(frozen=True)
class QualityVerdict:
    """Judgement on a piece of recognized text. Never persisted."""

    passed: bool
    confidence: float
    cleaned_text: str
    reasons: tuple[str, ...] = ()
