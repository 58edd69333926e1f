"""
Pipeline stages.

This package contains:
- The stage contracts the controller is written against (base)
- A simulated robot scan over a synthetic scene (robot_scan)
- A simulated height-band surface detector (detection)
- The in-memory surface selection server (surface_server)
"""

from .base import (
    CloudSink,
    Mesh,
    Pose,
    RobotScanStage,
    SelectionStage,
    SurfaceDetectionStage,
    SurfaceEntry,
    SurfaceMarker,
)
from .robot_scan import SimulatedRobotScan, make_tabletop_scene
from .detection import SimulatedSurfaceDetection
from .surface_server import InteractiveSurfaceServer


__all__ = [
    "CloudSink",
    "Mesh",
    "Pose",
    "RobotScanStage",
    "SelectionStage",
    "SurfaceDetectionStage",
    "SurfaceEntry",
    "SurfaceMarker",
    "SimulatedRobotScan",
    "make_tabletop_scene",
    "SimulatedSurfaceDetection",
    "InteractiveSurfaceServer",
]
