import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from surface_detection.errors import ConfigurationError
from surface_detection.params.models import (
    GROUP_TYPES,
    BlendingParameters,
    DetectionParameters,
    ParameterGroup,
    ScanParameters,
)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

log = logging.getLogger("ConfigLoader")


@dataclass
class ServerConfig:
    host: str = "[::]"
    port: int = 50051
    dispatch_workers: int = 4
    stream_workers: int = 4


@dataclass
class ServiceConfig:
    """Startup configuration consumed by the service."""
    robot_scan: ScanParameters
    surface_detection: DetectionParameters
    blending_plan: BlendingParameters
    publish_region_point_cloud: bool = False
    publish_period: float = 1.0
    server: ServerConfig = field(default_factory=ServerConfig)

    def parameter_groups(self):
        return {
            ParameterGroup.SCAN: self.robot_scan,
            ParameterGroup.DETECTION: self.surface_detection,
            ParameterGroup.BLENDING: self.blending_plan,
        }


def parse_config(raw: Dict[str, Any]) -> ServiceConfig:
    """
    Validate a raw configuration mapping.

    Every parameter group and every field of it is required; anything missing
    is a startup failure.
    """
    if not isinstance(raw, dict):
        raise ConfigurationError("Configuration root must be a mapping")

    groups = {}
    for group, cls in GROUP_TYPES.items():
        section = raw.get(group.value)
        if not isinstance(section, dict):
            raise ConfigurationError(f"Missing parameter group '{group.value}'")
        groups[group.value] = cls.from_dict(section, strict=True)

    server_raw = raw.get("server") or {}
    try:
        server = ServerConfig(**server_raw)
    except TypeError as e:
        raise ConfigurationError(f"Invalid server block: {e}")

    period = float(raw.get("publish_period", 1.0))
    if period <= 0:
        raise ConfigurationError(f"publish_period must be positive, got {period}")

    return ServiceConfig(
        publish_region_point_cloud=bool(raw.get("publish_region_point_cloud", False)),
        publish_period=period,
        server=server,
        **groups,
    )


def load_config(path: Optional[Union[str, Path]] = None) -> ServiceConfig:
    """Load the service configuration from a YAML file (packaged defaults if omitted)."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Could not parse {config_path}: {e}")

    config = parse_config(raw)
    log.info(f"Loaded configuration from {config_path}")
    return config
