"""
Configuration settings for clipwindows.

Defaults for the window analysis can be overridden through environment
variables prefixed with ``CLIPWINDOWS_`` or a ``.env`` file.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "clipwindows"
    log_level: str = "INFO"

    # Input conventions
    start0based: bool = True
    design: str = "condition"
    check_window_number: bool = False

    # Prefilter
    min_count: int = 2

    # Regression engine
    fit_type: str = "auto"  # auto, parametric or mean
    n_cpus: Optional[int] = None

    # Multiple testing and significance
    fdr_method: str = "BH"  # or "independent_filtering"
    fdr_alpha: float = 0.1
    padj_threshold: float = Field(default=0.05, ge=0, le=1)
    lfc_threshold: float = 0.5

    # Output
    output_dir: Optional[Path] = None

    class Config:
        env_prefix = "CLIPWINDOWS_"
        env_file = ".env"
        env_file_encoding = "utf-8"


# Global settings instance
settings = Settings()
