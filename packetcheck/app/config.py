"""
Runtime configuration for the repository checker.

Two layers:

- CheckerConfig: per-run options for checking one repository (year filter,
  validation skip, report output, known-exceptions file). Built from CLI
  arguments or from the environment and immutable once built.
- HostedSettings: settings for the multi-repository dispatcher (pool size,
  per-repository timeout, result upload), parsed from the environment with
  the PACKETCHECK_ prefix.

Configuration must not influence verification outcomes beyond selecting
which packets are checked.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from packetcheck.app.reporting.formatters import OutputFormat


class CheckerConfig(BaseModel):
    """Options for a single repository check."""

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    YEAR: Optional[str] = Field(
        None,
        description="Only scan the data/<YEAR> subdirectory",
    )

    SKIP_VALIDATION: bool = Field(
        False,
        description="Count packets without validating hashes or signatures",
    )

    # ------------------------------------------------------------------
    # Known exceptions
    # ------------------------------------------------------------------

    EXCEPTIONS_PATH: Optional[Path] = Field(
        None,
        description="YAML file mapping document ids to operator comments",
    )

    # ------------------------------------------------------------------
    # Report files
    # ------------------------------------------------------------------

    OUTPUT_FORMAT: Optional[OutputFormat] = Field(
        None,
        description="Write documents/signatures/repository report files",
    )

    OUTPUT_DIR: Path = Field(
        Path("output"),
        description="Base directory for report files",
    )

    # ------------------------------------------------------------------
    # Validators (Pydantic v2)
    # ------------------------------------------------------------------

    @field_validator("YEAR")
    @classmethod
    def validate_year(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if not (len(v) == 4 and v.isdigit()):
            raise ValueError(f"YEAR must be a four digit year, got '{v}'")
        return v

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> "CheckerConfig":
        """
        Load configuration from environment variables.

        All values are parsed once at startup and must remain immutable.
        """

        def env_bool(name: str, default: bool) -> bool:
            raw = os.getenv(name)
            if raw is None:
                return default
            return raw.lower() in {"1", "true", "yes", "on"}

        exceptions_env = os.getenv("PACKETCHECK_EXCEPTIONS_PATH")
        format_env = os.getenv("PACKETCHECK_OUTPUT_FORMAT")

        return cls(
            YEAR=os.getenv("PACKETCHECK_YEAR"),
            SKIP_VALIDATION=env_bool("PACKETCHECK_SKIP_VALIDATION", False),
            EXCEPTIONS_PATH=Path(exceptions_env) if exceptions_env else None,
            OUTPUT_FORMAT=OutputFormat(format_env.lower()) if format_env else None,
            OUTPUT_DIR=Path(os.getenv("PACKETCHECK_OUTPUT_DIR", "output")),
        )

    model_config = {
        "frozen": True,
    }


# -------------------------------------------------------------------------
# Hosted (multi-repository) settings
# -------------------------------------------------------------------------


class HostedSettings(BaseSettings):
    """
    Settings for scanning many repository instances concurrently.

    Fails fast at startup on malformed values.
    """

    workers: Annotated[
        int,
        Field(
            default=4,
            ge=1,
            le=64,
            description="Size of the fixed worker pool",
        ),
    ]

    repository_timeout_seconds: Annotated[
        Optional[float],
        Field(
            default=None,
            gt=0,
            description=(
                "Upper bound on a single repository scan; checked between "
                "packets. None disables the bound."
            ),
        ),
    ]

    upload_url: Annotated[
        Optional[AnyHttpUrl],
        Field(
            default=None,
            description="Repository monitor endpoint receiving each result",
        ),
    ]

    upload_timeout_seconds: Annotated[
        float,
        Field(
            default=30.0,
            gt=0,
            description="HTTP timeout for a single result upload",
        ),
    ]

    model_config = SettingsConfigDict(
        env_prefix="PACKETCHECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> HostedSettings:
    """Process-wide HostedSettings, parsed once."""
    return HostedSettings()
