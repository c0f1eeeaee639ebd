"""
Exporter Configuration Management

Layering (later wins):
- built-in defaults
- YAML file (optional, default config.yml)
- environment variables (AWS_REGION, PERIOD, RESOLUTION, ...)
- command line arguments
"""

import argparse
import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, model_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigError

logger = logging.getLogger("nvidia_cloudwatch.config")

LEGAL_RESOLUTIONS = (1, 60)

# env var -> config field
ENV_OVERRIDES = {
    "AWS_REGION": "region",
    "PERIOD": "period",
    "RESOLUTION": "resolution",
    "CLOUDWATCH_EXPORTER": "cloudwatch_exporter",
    "CLOUDWATCH_NAMESPACE": "namespace",
    "GPU_PROVIDER": "provider",
    "METRICS_PORT": "port",
    "LOG_LEVEL": "log_level",
}


class ExporterConfig(BaseModel):
    # CloudWatch push pipeline
    cloudwatch_exporter: bool = False
    region: str = "us-east-1"
    namespace: str = "nvidia-cloudwatch"
    period: int = 60
    resolution: int = 60
    memory_unit: Literal["Megabytes", "Bytes"] = "Megabytes"
    bucket_tolerance: float = 0.0
    max_in_flight: int = 4
    # Device access
    provider: Literal["nvml", "nvsmi"] = "nvml"
    # Pull endpoint
    host: str = "0.0.0.0"
    port: int = 2112
    log_level: str = "INFO"

    @model_validator(mode="after")
    def check_timing(self) -> "ExporterConfig":
        if not self.region:
            self.region = "us-east-1"
        if self.resolution not in LEGAL_RESOLUTIONS:
            raise ValueError("Resolution must be 1 or 60")
        if self.period < self.resolution:
            raise ValueError("Period must be greater than or equal to resolution.")
        if self.bucket_tolerance < 0:
            raise ValueError("bucket_tolerance must not be negative")
        if self.max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")
        return self

    def override_with_args(self, args: argparse.Namespace) -> "ExporterConfig":
        """Return a copy with explicitly provided command line arguments applied"""
        data = self.model_dump()
        if getattr(args, "cloudwatch_exporter", False):
            data["cloudwatch_exporter"] = True
        for field in ("provider", "port", "log_level"):
            value = getattr(args, field, None)
            if value is not None:
                data[field] = value
        return build_config(data)


def build_config(data: Dict[str, Any]) -> ExporterConfig:
    """Validate raw settings, converting failures to ConfigError"""
    try:
        return ExporterConfig(**data)
    except PydanticValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e


def read_env(environ: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Collect config overrides from environment variables that are set and non-empty"""
    environ = os.environ if environ is None else environ
    return {field: environ[var] for var, field in ENV_OVERRIDES.items() if environ.get(var)}


def load_config(config_path: Optional[Path] = None,
                environ: Optional[Dict[str, str]] = None) -> ExporterConfig:
    """Load configuration from YAML file (if present) and environment"""
    if environ is None:
        load_dotenv()

    data: Dict[str, Any] = {}
    if config_path is not None and config_path.exists():
        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"failed to parse {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{config_path} must contain a mapping")
        logger.debug(f"Loaded config from {config_path}: {data}")
    elif config_path is not None:
        logger.debug(f"Config file not found: {config_path}, using defaults")

    data.update(read_env(environ))
    return build_config(data)
