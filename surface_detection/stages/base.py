"""
Stage contracts for the surface detection pipeline.

The controller only talks to its collaborators through these interfaces:

- RobotScanStage: plans and runs the scan, feeding clouds into a CloudSink
- SurfaceDetectionStage: accumulates clouds and extracts surfaces
- SelectionStage: owns the operator-visible surface set and its flags

Concrete implementations are injected at service construction.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Sequence, Tuple

import numpy as np

from surface_detection.params.models import DetectionParameters, ScanParameters


@dataclass(frozen=True)
class Pose:
    """Camera pose: position (x, y, z) and orientation quaternion (x, y, z, w)."""
    position: Tuple[float, float, float]
    orientation: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": [float(v) for v in self.position],
            "orientation": [float(v) for v in self.orientation],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pose":
        return cls(
            position=tuple(float(v) for v in data["position"]),
            orientation=tuple(float(v) for v in data.get("orientation", (0.0, 0.0, 0.0, 1.0))),
        )


@dataclass
class Mesh:
    """Triangle mesh of one surface."""
    vertices: np.ndarray   # (N, 3) float
    triangles: np.ndarray  # (M, 3) int indices into vertices


@dataclass(frozen=True)
class SurfaceMarker:
    """Visual representation of a found surface (triangle list)."""
    id: int
    ns: str
    frame_id: str
    points: Tuple[Tuple[float, float, float], ...]
    color: Tuple[float, float, float, float] = (0.0, 1.0, 0.0, 1.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ns": self.ns,
            "frame_id": self.frame_id,
            "points": [[float(c) for c in p] for p in self.points],
            "color": [float(c) for c in self.color],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SurfaceMarker":
        return cls(
            id=int(data["id"]),
            ns=data.get("ns", ""),
            frame_id=data.get("frame_id", ""),
            points=tuple(tuple(float(c) for c in p) for p in data.get("points", [])),
            color=tuple(float(c) for c in data.get("color", (0.0, 1.0, 0.0, 1.0))),
        )


@dataclass
class SurfaceEntry:
    """One surface as held by the selection stage."""
    surface_id: str
    mesh: Mesh
    selected: bool = False
    visible: bool = True


class CloudSink(ABC):
    """Receives raw clouds as the scan reaches each pose."""

    @abstractmethod
    def add_cloud(self, cloud: np.ndarray) -> None:
        pass


class RobotScanStage(ABC):

    def initialize(self) -> None:
        """Prepare the stage; raise StartupError if it cannot run."""

    @abstractmethod
    def plan_scan_poses(self, params: ScanParameters) -> List[Pose]:
        """Return the scan path preview for the given parameters."""

    @abstractmethod
    def scan(self, params: ScanParameters, sink: CloudSink) -> int:
        """
        Run the scan, blocking until it finishes.

        :return: Number of poses reached (0 means the scan failed)
        """

    @abstractmethod
    def get_latest_scan_poses(self) -> List[Pose]:
        """Poses reached by the most recent scan."""


class SurfaceDetectionStage(CloudSink):

    def initialize(self) -> None:
        """Prepare the stage; raise StartupError if it cannot run."""

    @abstractmethod
    def clear_results(self) -> None:
        """Drop accumulated clouds and previous results."""

    @abstractmethod
    def find_surfaces(self, params: DetectionParameters) -> bool:
        """Extract surfaces from the accumulated clouds; False if none found."""

    @abstractmethod
    def get_meshes(self) -> List[Mesh]:
        pass

    @abstractmethod
    def get_surface_markers(self) -> List[SurfaceMarker]:
        pass

    @abstractmethod
    def get_region_colored_cloud(self) -> np.ndarray:
        """(N, 6) array of x, y, z, r, g, b for the segmented regions."""


SelectionListener = Callable[[], None]


class SelectionStage(ABC):
    """
    Owns the surface set. Every public mutator is one batch and calls the
    registered listeners exactly once when the batch completes.
    """

    def initialize(self) -> None:
        """Prepare the stage; raise StartupError if it cannot run."""

    @abstractmethod
    def add_selection_listener(self, listener: SelectionListener) -> None:
        pass

    @abstractmethod
    def replace_surfaces(self, meshes: Sequence[Mesh]) -> List[str]:
        """Drop every surface and register the given meshes; return the new ids."""

    @abstractmethod
    def set_selection_flags(self, surface_ids: Sequence[str], selected: bool) -> None:
        pass

    @abstractmethod
    def select_all(self, selected: bool) -> None:
        pass

    @abstractmethod
    def show_all(self, visible: bool) -> None:
        pass

    @abstractmethod
    def get_selected_list(self) -> List[str]:
        pass

    @abstractmethod
    def get_surfaces(self) -> List[SurfaceEntry]:
        pass
