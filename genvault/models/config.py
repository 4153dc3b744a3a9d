"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

import tempfile
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_BASE_URI = "https://www.producer.ai"


class SourceMode(str, Enum):
    """Which remote listing populates the manifest."""

    FAVORITES = "favorites"  # page-index pagination
    PUBLISHED = "published"  # running-offset pagination


class SyncConfig(BaseModel):
    """A validated configuration model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Remote source
    remote_base_uri: str = DEFAULT_BASE_URI
    source_mode: SourceMode = SourceMode.FAVORITES
    page_size: int = 20
    session_state_path: str = str(Path("~/.producer-ai-auth.json").expanduser())

    # Acquisition
    file_extension: str = ".wav"
    consecutive_failure_limit: int = 5
    throttle_delay_range: tuple[float, float] = (0.3, 0.8)
    listing_delay_range: tuple[float, float] = (0.2, 0.5)
    min_payload_bytes: int = 10_000
    batch_size: int = 10
    direct_timeout: float = 60.0
    interactive_timeout: float = 120.0
    strict_audio_check: bool = False
    headless: bool = False

    # Locations
    output_dir: str = "downloads"
    data_dir: str = "data/output"
    staging_dir: str = str(Path(tempfile.gettempdir()) / "genvault-staging")

    # Behaviour
    dry_run: bool = False
    event_log: bool = False

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    @field_validator("remote_base_uri")
    @classmethod
    def validate_base_uri(cls, v: str) -> str:
        """Requires an absolute http(s) URI and strips any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Remote base URI must be http(s), got: {v}")
        return v.rstrip("/")

    @field_validator("page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if v < 1 or v > 100:
            raise ValueError("Page size must be between 1 and 100.")
        return v

    @field_validator("file_extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        """Normalizes the extension to a leading dot ('wav' -> '.wav')."""
        if not v or v == ".":
            raise ValueError("File extension cannot be empty.")
        return v if v.startswith(".") else f".{v}"

    @field_validator("consecutive_failure_limit", "batch_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be at least 1.")
        return v

    @field_validator("min_payload_bytes")
    @classmethod
    def validate_min_payload(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Minimum payload size cannot be negative.")
        return v

    @field_validator("throttle_delay_range", "listing_delay_range")
    @classmethod
    def validate_delay_range(cls, v: tuple[float, float]) -> tuple[float, float]:
        """
        Delay ranges are a rate-limiting policy towards the remote service, so a
        range that collapses to a fixed zero delay is rejected.
        """
        low, high = v
        if low < 0 or high < 0:
            raise ValueError("Delay bounds cannot be negative.")
        if high < low:
            raise ValueError(f"Delay range upper bound {high} is below lower bound {low}.")
        if high == 0:
            raise ValueError("Delay range cannot be disabled (upper bound must be > 0).")
        return v

    @model_validator(mode="after")
    def validate_timeouts(self) -> "SyncConfig":
        """The interactive strategy is the slow path and must not time out first."""
        if self.direct_timeout <= 0 or self.interactive_timeout <= 0:
            raise ValueError("Timeouts must be positive.")
        if self.interactive_timeout < self.direct_timeout:
            raise ValueError(
                "Interactive timeout must be at least as long as the direct timeout."
            )
        return self

    @property
    def manifest_path(self) -> Path:
        """The manifest file for the configured source mode."""
        return Path(self.data_dir) / f"{self.source_mode.value}.json"

    @property
    def output_path(self) -> Path:
        return Path(self.output_dir).expanduser()

    @property
    def staging_path(self) -> Path:
        return Path(self.staging_dir).expanduser()

    @property
    def log_dir(self) -> Path:
        return Path(self.data_dir) / "logs"

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path", "dry_run"}
        return {key for key in cls.model_fields if key not in internal_fields}
