"""
BASTION Configuration

Configuration models for the response system, loaded from YAML with
environment variable overrides.

Sources, lowest to highest precedence:
    1. Model defaults
    2. YAML file (explicit path, or the first file found in get_config_paths())
    3. Environment variables named BASTION_<SECTION>_<KEY> (or BASTION_<KEY>
       for top-level settings), e.g. BASTION_SYSTEM_MAX_RESPONSE_TIME=120

Usage:
    from bastion.config import load_config

    config = load_config("/etc/bastion/config.yaml")
    print(config.system.max_response_time)
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union, get_origin

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from bastion.exceptions import ConfigurationError

logger = logging.getLogger("BASTION.Config")

ENV_PREFIX = "BASTION_"
LOG_LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# =============================================================================
# Sections
# =============================================================================

class SystemConfig(BaseModel):
    """Operator tuning for the response system.

    Frozen: an update replaces the whole object, so a dispatch already in
    flight keeps the values it started with.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    max_response_time: int = Field(default=300, ge=0, le=65535)
    # Reserved; a failed response is reported, never retried
    max_retry_attempts: int = Field(default=3, ge=0, le=255)
    enable_emergency_override: bool = True
    enable_auto_recovery: bool = False
    health_check_interval: int = Field(default=30, ge=0, le=65535)


class FailoverConfig(BaseModel):
    """Service failover settings."""
    model_config = ConfigDict(extra="forbid")

    critical_services: List[str] = Field(
        default_factory=lambda: [
            "bastion-core",
            "auth-service",
            "network-monitor",
            "database-service",
        ]
    )
    non_critical_services: List[str] = Field(default_factory=list)
    backup_suffix: str = "-backup"
    inter_service_delay: float = Field(default=0.5, ge=0.0)

    @field_validator("critical_services")
    @classmethod
    def _services_named(cls, value: List[str]) -> List[str]:
        if any(not name.strip() for name in value):
            raise ValueError("service names must not be empty")
        return value


class NetworkConfig(BaseModel):
    """Network isolation backend settings."""
    model_config = ConfigDict(extra="forbid")

    chain_name: str = "BASTION_EMERGENCY"
    zone_subnet_template: str = "10.0.{zone}.0/24"
    iptables_path: str = "iptables"
    command_timeout: float = Field(default=10.0, gt=0.0)

    @field_validator("zone_subnet_template")
    @classmethod
    def _template_has_zone(cls, value: str) -> str:
        if "{zone}" not in value:
            raise ValueError("zone_subnet_template must contain '{zone}'")
        return value


class ControllerConfig(BaseModel):
    """Controller backend selection."""
    model_config = ConfigDict(extra="forbid")

    backend: Literal["simulator", "system"] = "simulator"
    systemctl_path: str = "systemctl"
    command_timeout: float = Field(default=30.0, gt=0.0)
    dry_run: bool = False


class BastionConfig(BaseModel):
    """Root configuration."""
    model_config = ConfigDict(extra="forbid")

    log_level: str = "INFO"
    log_file: Optional[str] = None
    emergency_queue_size: int = Field(default=16, ge=1)
    validate_requests: bool = False

    system: SystemConfig = Field(default_factory=SystemConfig)
    failover: FailoverConfig = Field(default_factory=FailoverConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    controllers: ControllerConfig = Field(default_factory=ControllerConfig)

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.upper()
        if value not in LOG_LEVEL_NAMES:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVEL_NAMES)}")
        return value


SECTIONS = ("system", "failover", "network", "controllers")


# =============================================================================
# Loading
# =============================================================================

def get_config_paths() -> List[Path]:
    """Return the config file search path, highest priority first."""
    return [
        Path.cwd() / "bastion.yaml",
        Path.home() / ".bastion" / "config.yaml",
        Path("/etc/bastion/config.yaml"),
    ]


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file: {e}", config_file=str(path)) from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file: {e}", config_file=str(path)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("Config file must contain a mapping", config_file=str(path))
    return data


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Merge BASTION_* environment variables into raw config data."""
    for env_key, raw in os.environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        name = env_key[len(ENV_PREFIX):].lower()

        if name in BastionConfig.model_fields and name not in SECTIONS:
            data[name] = raw
            continue

        section, _, key = name.partition("_")
        if section not in SECTIONS or not key:
            continue
        section_model = BastionConfig.model_fields[section].annotation
        if key not in section_model.model_fields:
            logger.debug(f"Ignoring unknown config override {env_key}")
            continue

        value: Any = raw
        if get_origin(section_model.model_fields[key].annotation) is list:
            # comma-separated
            value = [item.strip() for item in raw.split(",") if item.strip()]

        section_data = data.setdefault(section, {})
        if not isinstance(section_data, dict):
            raise ConfigurationError(f"Config section '{section}' must be a mapping", config_key=section)
        section_data[key] = value

    return data


def load_config(path: Optional[Union[str, Path]] = None) -> BastionConfig:
    """
    Load configuration.

    Args:
        path: Explicit config file. If None, the search path is tried and
              defaults are used when no file exists.

    Returns:
        Validated BastionConfig

    Raises:
        ConfigurationError: If the file is missing, unparseable or invalid
    """
    data: Dict[str, Any] = {}
    source: Optional[Path] = None

    if path is not None:
        source = Path(path)
        if not source.exists():
            raise ConfigurationError(f"Config file not found: {source}", config_file=str(source))
    else:
        source = next((p for p in get_config_paths() if p.is_file()), None)

    if source is not None:
        data = _read_yaml(source)
        logger.debug(f"Loaded config file {source}")

    data = _apply_env_overrides(data)

    try:
        return BastionConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Configuration validation failed: {e}",
            config_file=str(source) if source else None,
        ) from e
