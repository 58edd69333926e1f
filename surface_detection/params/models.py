import logging
from dataclasses import dataclass, fields, asdict
from enum import Enum
from typing import Any, Dict, Optional

from surface_detection.errors import ConfigurationError

log = logging.getLogger("Parameters")


def _coerce(field_type, value):
    """Convert a config or wire value to a field type without losing information."""
    if field_type is bool:
        if not isinstance(value, bool):
            raise TypeError(f"expected a boolean, got {type(value).__name__}")
        return value
    if field_type is int:
        if isinstance(value, bool):
            raise TypeError("expected an integer, got bool")
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"expected an integer, got {value}")
        return int(value)
    return field_type(value)


class ParameterGroup(Enum):
    """The three configuration groups held by the parameter store."""
    SCAN = "robot_scan"
    DETECTION = "surface_detection"
    BLENDING = "blending_plan"


class ParameterSet:
    """
    Mixin for the frozen parameter dataclasses.

    Values are immutable; a new configuration is always a new instance, so
    the store can swap it in as a whole.
    """

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], strict: bool = False):
        """
        Build a complete value from a mapping.

        :param data: Field values; numbers coming off the wire are coerced to
                     the declared field type.
        :param strict: If True, every field must be present (configuration
                       loading). Otherwise missing fields take the type's zero
                       value, like an unset field of a wire message.
        """
        data = data or {}
        missing = [f.name for f in fields(cls) if f.name not in data]
        if strict and missing:
            raise ConfigurationError(
                f"Missing parameters: {', '.join(missing)}", module=cls.__name__
            )

        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            log.debug(f"Ignoring unknown {cls.__name__} fields: {sorted(unknown)}")

        values = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            try:
                values[f.name] = _coerce(f.type, data[f.name])
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid value for '{f.name}': {data[f.name]!r} ({e})",
                    module=cls.__name__,
                )
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ScanParameters(ParameterSet):
    """Robot scan configuration (sweep path and reachability)."""
    world_frame: str = ""
    tcp_frame: str = ""
    cam_to_obj_zoffset: float = 0.0
    cam_to_obj_xoffset: float = 0.0
    cam_tilt_angle: float = 0.0
    sweep_angle_start: float = 0.0
    sweep_angle_end: float = 0.0
    num_scan_points: int = 0
    reachable_scan_points_ratio: float = 0.0
    stop_on_planning_error: bool = False


@dataclass(frozen=True)
class DetectionParameters(ParameterSet):
    """Surface extraction configuration."""
    frame_id: str = ""
    threshold: float = 0.0
    k_search: int = 0
    stdv_threshold: float = 0.0
    min_cluster_size: int = 0
    max_cluster_size: int = 0
    smoothness_threshold: float = 0.0
    curvature_threshold: float = 0.0
    voxel_leaf: float = 0.0


@dataclass(frozen=True)
class BlendingParameters(ParameterSet):
    """Blending plan configuration (tool geometry and speeds)."""
    tool_radius: float = 0.0
    margin: float = 0.0
    overlap: float = 0.0
    approach_spd: float = 0.0
    blending_spd: float = 0.0
    retract_spd: float = 0.0
    traverse_spd: float = 0.0
    discretization: float = 0.0
    safe_traverse_height: float = 0.0


GROUP_TYPES = {
    ParameterGroup.SCAN: ScanParameters,
    ParameterGroup.DETECTION: DetectionParameters,
    ParameterGroup.BLENDING: BlendingParameters,
}
