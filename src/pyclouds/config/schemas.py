"""Configuration schemas."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class HttpConfig(BaseModel):
    """HTTP transport and retry settings."""

    connect_timeout: float = Field(default=60.0, description="Seconds to wait for a connection")
    read_timeout: float = Field(default=60.0, description="Seconds to wait for a response")
    max_retries: int = Field(default=5, description="Retries for server errors and I/O failures")
    retry_delay_start: float = Field(default=0.05, description="Base backoff period in seconds")
    max_redirects: int = Field(default=5, description="Redirects followed per command")
    max_rate_limit_wait: float = Field(
        default=120.0, description="Longest wait honoured for a rate limited request"
    )
    user_agent: str = "pyclouds/0.1.0"
    trust_all_certs: bool = False

    @field_validator("connect_timeout", "read_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @field_validator("max_retries", "max_redirects")
    @classmethod
    def validate_counts(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Retry and redirect limits cannot be negative")
        return v

    @field_validator("retry_delay_start", "max_rate_limit_wait")
    @classmethod
    def validate_delays(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delays cannot be negative")
        return v


class ComputeConfig(BaseModel):
    """Node polling and provisioning settings."""

    poll_timeout: float = Field(default=1200.0, description="Seconds to wait for a node state")
    poll_initial_period: float = Field(default=0.05, description="First poll interval in seconds")
    poll_max_period: float = Field(default=1.0, description="Longest poll interval in seconds")
    provisioning_threads: int = Field(default=1, description="Workers in the provisioning pool")

    @field_validator("poll_timeout")
    @classmethod
    def validate_poll_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Poll timeout must be positive")
        return v

    @field_validator("poll_initial_period", "poll_max_period")
    @classmethod
    def validate_periods(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Poll periods cannot be negative")
        return v

    @field_validator("provisioning_threads")
    @classmethod
    def validate_threads(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Provisioning threads must be positive")
        return v

    @model_validator(mode="after")
    def validate_period_order(self) -> "ComputeConfig":
        if self.poll_max_period < self.poll_initial_period:
            raise ValueError("poll_max_period must not be smaller than poll_initial_period")
        return self


class BlobStoreConfig(BaseModel):
    """Blobstore settings."""

    max_parallel_deletes: int = Field(default=10, description="Concurrent deletes when clearing")
    request_timeout: Optional[float] = Field(
        default=None, description="Seconds to wait for a delete slot; unlimited when unset"
    )
    max_errors: int = Field(default=3, description="Passes attempted when clearing a container")
    base_dir: Optional[str] = Field(default=None, description="Root of the filesystem blobstore")
    default_max_results: int = 1000

    @field_validator("max_parallel_deletes", "max_errors", "default_max_results")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be positive")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    destination: str = "stdout"
    file_path: Optional[str] = None
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in levels:
            raise ValueError(f"Log level must be one of {sorted(levels)}")
        return v.upper()

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v not in ("stdout", "file", "both"):
            raise ValueError("Log destination must be one of stdout, file, both")
        return v


class PyCloudsConfig(BaseModel):
    """Root configuration."""

    user_threads: int = Field(default=10, description="Threads in the shared user executor")
    http: HttpConfig = Field(default_factory=HttpConfig)
    compute: ComputeConfig = Field(default_factory=ComputeConfig)
    blobstore: BlobStoreConfig = Field(default_factory=BlobStoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("user_threads")
    @classmethod
    def validate_user_threads(cls, v: int) -> int:
        if v < 1:
            raise ValueError("User threads must be positive")
        return v
