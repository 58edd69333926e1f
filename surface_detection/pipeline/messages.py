"""Request/response types of the three service protocols."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from surface_detection.params.models import BlendingParameters, DetectionParameters, ScanParameters
from surface_detection.stages.base import Pose, SurfaceMarker


def _params_to_dict(out: Dict[str, Any], key: str, value):
    if value is not None:
        out[key] = value.to_dict()


@dataclass
class ParameterOverrides:
    """Caller-supplied parameter groups; only the groups an action touches are applied."""
    robot_scan: Optional[ScanParameters] = None
    surface_detection: Optional[DetectionParameters] = None

    @classmethod
    def from_request(cls, request: Dict[str, Any]) -> "ParameterOverrides":
        return cls(
            robot_scan=ScanParameters.from_dict(request.get("robot_scan")),
            surface_detection=DetectionParameters.from_dict(request.get("surface_detection")),
        )


@dataclass
class SurfaceDetectionResponse:
    surfaces_found: bool = False
    surfaces: List[SurfaceMarker] = field(default_factory=list)
    robot_scan: Optional[ScanParameters] = None
    surface_detection: Optional[DetectionParameters] = None
    blending_plan: Optional[BlendingParameters] = None
    robot_scan_poses: List[Pose] = field(default_factory=list)
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "surfaces_found": self.surfaces_found,
            "surfaces": [m.to_dict() for m in self.surfaces],
            "robot_scan_poses": [p.to_dict() for p in self.robot_scan_poses],
        }
        _params_to_dict(out, "robot_scan", self.robot_scan)
        _params_to_dict(out, "surface_detection", self.surface_detection)
        _params_to_dict(out, "blending_plan", self.blending_plan)
        if self.message:
            out["message"] = self.message
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SurfaceDetectionResponse":
        def group(key, cls_):
            return cls_.from_dict(data[key]) if key in data else None

        return cls(
            surfaces_found=bool(data.get("surfaces_found", False)),
            surfaces=[SurfaceMarker.from_dict(m) for m in data.get("surfaces", [])],
            robot_scan=group("robot_scan", ScanParameters),
            surface_detection=group("surface_detection", DetectionParameters),
            blending_plan=group("blending_plan", BlendingParameters),
            robot_scan_poses=[Pose.from_dict(p) for p in data.get("robot_scan_poses", [])],
            message=data.get("message", ""),
        )


@dataclass(frozen=True)
class DetectionResult:
    """Snapshot of the last successful detection."""
    surfaces_found: bool = False
    surfaces: Tuple[SurfaceMarker, ...] = ()
    surface_detection: Optional[DetectionParameters] = None
    robot_scan_poses: Tuple[Pose, ...] = ()

    def to_response(self) -> SurfaceDetectionResponse:
        return SurfaceDetectionResponse(
            surfaces_found=self.surfaces_found,
            surfaces=list(self.surfaces),
            surface_detection=self.surface_detection,
            robot_scan_poses=list(self.robot_scan_poses),
        )


@dataclass
class ParametersResponse:
    surface_detection: DetectionParameters
    robot_scan: ScanParameters
    blending_plan: BlendingParameters

    def to_dict(self) -> Dict[str, Any]:
        return {
            "surface_detection": self.surface_detection.to_dict(),
            "robot_scan": self.robot_scan.to_dict(),
            "blending_plan": self.blending_plan.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParametersResponse":
        return cls(
            surface_detection=DetectionParameters.from_dict(data.get("surface_detection")),
            robot_scan=ScanParameters.from_dict(data.get("robot_scan")),
            blending_plan=BlendingParameters.from_dict(data.get("blending_plan")),
        )


@dataclass(frozen=True)
class SelectedSurfacesChanged:
    """Outbound notification: full selection after one mutation batch."""
    selected_surfaces: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"selected_surfaces": list(self.selected_surfaces)}


def cloud_to_dict(cloud: np.ndarray, frame_id: str = "") -> Dict[str, Any]:
    """Flatten an (N, 6) x, y, z, r, g, b cloud for the wire."""
    return {
        "frame_id": frame_id,
        "fields": ["x", "y", "z", "r", "g", "b"],
        "width": int(len(cloud)),
        "data": [float(v) for v in np.asarray(cloud, dtype=np.float64).reshape(-1)],
    }


def cloud_from_dict(data: Dict[str, Any]) -> np.ndarray:
    values = np.asarray(data.get("data", []), dtype=np.float64)
    return values.reshape(-1, len(data.get("fields", [])) or 6)
