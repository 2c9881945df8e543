from docpipe.quality.models import DEFAULT_THRESHOLDS, QualityThresholds, QualityVerdict
from docpipe.quality.validator import validate

__all__ = [
    "DEFAULT_THRESHOLDS",
    "QualityThresholds",
    "QualityVerdict",
    "validate",
]
