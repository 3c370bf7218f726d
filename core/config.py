"""Pydantic configuration schema for the functions runtime."""

from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator


class LoggingConfig(BaseModel):
    """Logging section of the runtime configuration."""

    level: str = Field(default="INFO", description="Root log level")
    pretty: bool = Field(
        default=False, description="Pretty-print JSON logs (local development)"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


class RuntimeConfig(BaseModel):
    """Configuration schema for the runtime.

    ``url`` and ``env`` are the two values the execution context and global
    scope are built from; everything else configures discovery and the
    local HTTP server.
    """

    url: Optional[str] = Field(
        None, description="Public base URL (defaults to http://{host}:{port})"
    )
    env: Dict[str, Any] = Field(
        default_factory=dict,
        description="Environment passed to functions; ACCOUNT_SID and AUTH_TOKEN expected",
    )
    base_dir: Path = Field(default=Path("."), description="Project root directory")
    functions_dir: str = Field(default="functions")
    assets_dir: str = Field(default="assets")
    host: str = Field(default="localhost")
    port: int = Field(default=3000, ge=1, le=65535)
    twiml_tags: List[str] = Field(
        default_factory=lambda: ["Response"],
        description="Root element names recognized as TwiML documents",
    )
    validate_signatures: bool = Field(
        default=False,
        description="Require a valid X-Twilio-Signature on protected functions",
    )
    invocation_timeout: float = Field(
        default=10.0, gt=0, description="Seconds before a pending invocation fails"
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that URL is well-formed."""
        if v is None:
            return v
        result = urlparse(v)
        if result.scheme not in ("http", "https") or not result.netloc:
            raise ValueError("URL must include scheme (http/https) and hostname")
        return v.rstrip("/")

    @model_validator(mode="after")
    def default_url(self) -> "RuntimeConfig":
        if self.url is None:
            self.url = f"http://{self.host}:{self.port}"
        return self

    @property
    def functions_path(self) -> Path:
        return (self.base_dir / self.functions_dir).resolve()

    @property
    def assets_path(self) -> Path:
        return (self.base_dir / self.assets_dir).resolve()

    class Config:
        """Pydantic config."""

        extra = "forbid"
