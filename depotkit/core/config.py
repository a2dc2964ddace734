"""Configuration management for depotkit."""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator

logger = structlog.get_logger()


class TransportConfig(BaseModel):
    """Per-client content transport configuration."""

    header_timeout: float = Field(
        default=10.0,
        description="Seconds allowed until response headers are received"
    )
    body_timeout: float = Field(
        default=60.0,
        description="Seconds allowed to finish reading a response body"
    )
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    user_agent: str = Field(default="depotkit/0.1.0", description="User-Agent header")

    @field_validator("header_timeout", "body_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout values."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class DirectoryConfig(BaseModel):
    """Directory service configuration."""

    endpoints: list[str] = Field(
        default_factory=list,
        description="Directory service endpoints (host:port) in priority order"
    )
    cell_id: int = Field(default=0, description="Region cell id sent with queries")

    @field_validator("endpoints")
    @classmethod
    def validate_endpoints(cls, v: list[str]) -> list[str]:
        """Validate endpoint format."""
        for endpoint in v:
            host, sep, port = endpoint.rpartition(":")
            if not sep or not host or not port.isdigit():
                raise ValueError(f"Invalid endpoint: {endpoint}. Expected host:port")
        return v

    @field_validator("cell_id")
    @classmethod
    def validate_cell_id(cls, v: int) -> int:
        """Validate cell id value."""
        if v < 0:
            raise ValueError("Cell id must be non-negative")
        return v


class AppConfig(BaseModel):
    """Application configuration."""

    install_dir: Path = Field(
        default=Path.cwd() / "depots",
        description="Install root directory"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    transport: TransportConfig = Field(default_factory=TransportConfig)
    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)

    @classmethod
    def load(cls, config_file: Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Application configuration
        """
        if config_file is None:
            config_file = Path.home() / ".config" / "depotkit" / "config.json"

        if config_file.exists():
            with open(config_file) as f:
                data = json.load(f)
                return cls(**data)

        return cls()

    def save(self, config_file: Path) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file
        """
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v.upper()
