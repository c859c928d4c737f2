"""
Pipeline configuration.

One immutable value is built up front and handed to the pipeline. Bad values
are rejected here, at construction, so a misconfigured deployment fails on
startup instead of producing odd verdicts one document at a time.
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .exceptions import ConfigurationError

ENV_PREFIX = "POA_"


class ValidationConfig(BaseModel):
    """Tunable options for acquisition, parsing and rule evaluation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Rule engine
    legibility_threshold: float = Field(60.0, ge=0.0, le=100.0)
    commission_number_length: int = Field(6, ge=1, le=20)
    lookup_timeout: float = Field(5.0, gt=0.0)

    # Text acquisition
    ocr_dpi: int = Field(300, ge=72, le=1200)
    min_image_dpi: int = Field(150, ge=1)
    low_resolution_penalty: float = Field(0.85, gt=0.0, le=1.0)
    min_chars_per_page: int = Field(20, ge=0)
    ocr_page_timeout: float = Field(30.0, gt=0.0)
    ocr_language: str = Field("eng", min_length=1)
    ocr_psm: int = Field(3, ge=0, le=13)
    ocr_workers: int = Field(4, ge=1, le=64)

    # HTTP layer
    max_upload_bytes: int = Field(10 * 1024 * 1024, gt=0)

    @model_validator(mode="after")
    def _check_resolution_order(self) -> ValidationConfig:
        if self.min_image_dpi > self.ocr_dpi:
            raise ValueError(
                f"min_image_dpi ({self.min_image_dpi}) cannot exceed ocr_dpi ({self.ocr_dpi})"
            )
        return self

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> ValidationConfig:
        """Build a config from ``POA_*`` environment variables.

        Unset variables keep their defaults. Example: ``POA_LEGIBILITY_THRESHOLD=70``.

        Raises:
            ConfigurationError: if any variable fails validation.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, str] = {}
        for name in cls.model_fields:
            value = env.get(f"{ENV_PREFIX}{name.upper()}")
            if value is not None and value.strip():
                overrides[name] = value.strip()
        return build_config(**overrides)


def build_config(**options: object) -> ValidationConfig:
    """Construct a ValidationConfig, converting pydantic errors to ConfigurationError."""
    try:
        return ValidationConfig(**options)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid pipeline configuration: {exc.error_count()} error(s)",
            details={"errors": exc.errors(include_url=False)},
        ) from exc
