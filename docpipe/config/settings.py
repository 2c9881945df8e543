import os
import tempfile

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Built once per run and passed to the Processor and every step. Instances are
    frozen; derive variants with ``model_copy(update=...)``.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

    log_level: str = "INFO"

    pdf_engine: str = "pymupdf"
    pdf_render_scale: float = 1.5
    pdf_min_page_chars: int = 50
    pdf_max_rendered_pages: int = Field(default=4, ge=1)

    ocr_engine: str = "tesseract"
    ocr_language: str = "eng"
    ocr_psm: str = "3"

    # Quality thresholds for recognized text
    ocr_min_valid_char_ratio: float = 0.80
    ocr_max_special_char_ratio: float = 0.15
    ocr_min_word_count: int = 3
    ocr_max_word_length: int = 20
    ocr_min_avg_word_length: float = 2.0
    ocr_max_avg_word_length: float = 15.0
    ocr_max_single_char_ratio: float = 0.30
    ocr_min_word_like_ratio: float = 0.40
    ocr_repeat_run_length: int = 5
    ocr_max_artifact_ratio: float = 0.10
    ocr_max_long_word_ratio: float = 0.08
    ocr_quality_threshold: float = 0.5

    max_image_dimension: int = 1600
    max_image_size_mb: float = 3.0
    target_image_size_mb: float = 2.0
    image_compression: bool = True

    max_rows: int = 1000
    max_cols: int = 100

    memory_limit_mb: int = 0
    memory_poll_interval_ms: int = 50
    timeout_seconds: float = Field(default=300.0, gt=0)
    abort_grace_seconds: float = 5.0
    threads: int = Field(default_factory=lambda: os.cpu_count() or 1, ge=1)
    temp_dir: str = Field(default_factory=tempfile.gettempdir)
    keep_temps: bool = False
