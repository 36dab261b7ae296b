"""
Pydantic model for engine configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/141.0.0.0 Safari/537.36"
)

# Preferred-quality choices for the default representation
QUALITY_PREFERENCES = ("highest", "lowest")


class EngineConfig(BaseModel):
    """A validated configuration model for the acquisition engine."""

    # Retrieval
    concurrency: int = 3
    failure_budget: int = 5
    segment_retries: int = 2
    retry_delay: float = 1.0
    max_track_duration: int = 7200
    preferred_quality: str = "highest"

    # HTTP
    user_agent: str = DEFAULT_USER_AGENT
    connect_timeout: float = 15.0
    read_timeout: float = 60.0

    # Output
    output_dir: str = "."
    confirm_save: bool = False
    overwrite: bool = False

    # Credentials & filtering
    cookies_file: str = ""
    blacklisted_domains: list[str] = Field(default_factory=list)
    # Direct media smaller than this (bytes) is ignored during detection
    min_size: int = 100 * 1024

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Ensures a reasonable number of simultaneous segment requests."""
        if v < 1 or v > 32:
            raise ValueError("Concurrency must be between 1 and 32.")
        return v

    @field_validator("failure_budget", "segment_retries", "min_size")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value cannot be negative.")
        return v

    @field_validator("retry_delay", "connect_timeout", "read_timeout")
    @classmethod
    def validate_seconds(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Durations cannot be negative.")
        return v

    @field_validator("max_track_duration")
    @classmethod
    def validate_max_duration(cls, v: int) -> int:
        """The DASH probe ceiling must cover at least one minute."""
        if v < 60:
            raise ValueError("Max track duration must be at least 60 seconds.")
        return v

    @field_validator("preferred_quality")
    @classmethod
    def validate_preference(cls, v: str) -> str:
        v = v.lower()
        if v not in QUALITY_PREFERENCES:
            raise ValueError(
                f"Preferred quality must be one of: {', '.join(QUALITY_PREFERENCES)}."
            )
        return v

    @field_validator("blacklisted_domains")
    @classmethod
    def normalize_domains(cls, v: list[str]) -> list[str]:
        return [d.strip().lower() for d in v if d and d.strip()]

    @model_validator(mode="after")
    def validate_timeouts(self) -> "EngineConfig":
        """Checks for conflicting timeout options."""
        if self.read_timeout and self.connect_timeout > self.read_timeout:
            raise ValueError("Connect timeout cannot exceed read timeout.")
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
