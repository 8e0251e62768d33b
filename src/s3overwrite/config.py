"""Configuration loading and Pydantic models for s3overwrite."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class StoreConfig(BaseModel):
    """Object store connection configuration."""

    region: str = "us-east-1"
    endpoint_url: str = ""
    use_path_style: bool = False
    access_key_id: str = ""
    secret_access_key: str = ""


class OverwriteConfig(BaseModel):
    """Overwrite protocol settings."""

    temp_dir: str | None = None
    call_timeout: float | None = Field(default=None, gt=0)


class LoggingConfig(BaseModel):
    """Logging level and output format."""

    level: str = "INFO"
    format: str = "text"


class ObservabilityConfig(BaseModel):
    """Prometheus metrics toggle."""

    metrics: bool = False


class S3OverwriteConfig(BaseModel):
    """Top-level s3overwrite configuration."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    overwrite: OverwriteConfig = Field(default_factory=OverwriteConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def _parse_store(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the store section from YAML data.

    Handles nested structure: store.credentials.access_key_id -> access_key_id
    """
    if data is None:
        return {}
    result: dict[str, Any] = {
        "region": data.get("region", "us-east-1"),
        "endpoint_url": data.get("endpoint_url", ""),
        "use_path_style": data.get("use_path_style", False),
    }
    credentials = data.get("credentials")
    if isinstance(credentials, dict):
        result["access_key_id"] = credentials.get("access_key_id", "")
        result["secret_access_key"] = credentials.get("secret_access_key", "")
    return result


def _parse_overwrite(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the overwrite section from YAML data."""
    if data is None:
        return {}
    return {
        "temp_dir": data.get("temp_dir"),
        "call_timeout": data.get("call_timeout"),
    }


def _parse_logging(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the logging section from YAML data."""
    if data is None:
        return {}
    return {
        "level": data.get("level", "INFO"),
        "format": data.get("format", "text"),
    }


def _parse_observability(data: dict[str, Any] | None) -> dict[str, Any]:
    if data is None:
        return {}
    return {"metrics": data.get("metrics", False)}


def load_config(path: Path) -> S3OverwriteConfig:
    """Load an S3OverwriteConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated S3OverwriteConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a value has the wrong type.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return S3OverwriteConfig(
        store=StoreConfig(**_parse_store(raw.get("store"))),
        overwrite=OverwriteConfig(**_parse_overwrite(raw.get("overwrite"))),
        logging=LoggingConfig(**_parse_logging(raw.get("logging"))),
        observability=ObservabilityConfig(**_parse_observability(raw.get("observability"))),
    )
