"""Configuration management for the OBF client.

Loads configuration from YAML file and validates with Pydantic models.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Annotated

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from obf_client.exceptions import ConfigurationError

DEFAULT_API_URL = "https://openbadgefactory.com/v1"


class ApiConfig(BaseModel):
    """Remote OBF API configuration."""

    model_config = ConfigDict(frozen=True)

    url: str = DEFAULT_API_URL
    consumer_id: str = "obf-client"

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an absolute http(s) URL without trailing slash."""
        v = v.strip().rstrip("/")
        if not v.startswith(("https://", "http://")):
            msg = f"API url must start with https:// or http://, got: {v!r}"
            raise ValueError(msg)
        return v


class PKIConfig(BaseModel):
    """Client credential storage configuration."""

    model_config = ConfigDict(frozen=True)

    directory: Path = Path("./obf_data/pki/")
    key_filename: str = "obf.key"
    cert_filename: str = "obf.pem"
    client_id_filename: str = "client_id"


class TransportConfig(BaseModel):
    """HTTP transport configuration."""

    model_config = ConfigDict(frozen=True)

    timeout: Annotated[float, Field(gt=0, le=600)] = 30.0
    ca_bundle: Path | None = None
    retain_raw_response: bool = False


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class AuditConfig(BaseModel):
    """Audit logging configuration."""

    model_config = ConfigDict(frozen=True)

    log_file: Path = Path("./logs/obf_client.log")
    log_level: LogLevel = LogLevel.INFO


class Settings(BaseModel):
    """Root configuration model for the OBF client."""

    model_config = ConfigDict(frozen=True)

    api: ApiConfig = ApiConfig()
    pki: PKIConfig = PKIConfig()
    transport: TransportConfig = TransportConfig()
    audit: AuditConfig = AuditConfig()


def load_config(config_path: Path | str) -> Settings:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration YAML file.

    Returns:
        Validated Settings instance.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        yaml.YAMLError: If YAML parsing fails.
        pydantic.ValidationError: If configuration validation fails.
    """
    path = Path(config_path)
    with path.open("r") as f:
        data = yaml.safe_load(f)

    return Settings.model_validate(data or {})


def load_config_from_env(
    env_var: str = "OBF_CLIENT_CONFIG",
    default_paths: list[Path] | None = None,
) -> Settings:
    """Load configuration from environment variable or default paths.

    Args:
        env_var: Environment variable name containing config path.
        default_paths: List of default paths to try if env var not set.

    Returns:
        Validated Settings instance, or defaults if no file is found.

    Raises:
        ConfigurationError: If the environment variable names a missing file.
    """
    config_path = os.environ.get(env_var)
    if config_path:
        if not Path(config_path).is_file():
            raise ConfigurationError.invalid_config(field=env_var, reason=f"config file not found: {config_path}")
        return load_config(config_path)

    if default_paths is None:
        default_paths = [
            Path("obf_client.yaml"),
            Path("obf_client.yml"),
            Path("/etc/obf-client/config.yaml"),
        ]

    for path in default_paths:
        if path.exists():
            return load_config(path)

    return Settings()
