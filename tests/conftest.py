"""Shared test fixtures – parameter sets and scripted stage doubles."""

from __future__ import annotations

import threading
import time

import numpy as np
import pytest

from surface_detection.params import (
    BlendingParameters,
    DetectionParameters,
    ParameterGroup,
    ParameterStore,
    ScanParameters,
)
from surface_detection.pipeline import PipelineController, ResultCache, Topic
from surface_detection.stages import (
    InteractiveSurfaceServer,
    Mesh,
    Pose,
    RobotScanStage,
    SurfaceDetectionStage,
    SurfaceMarker,
)

DEFAULT_SCAN = ScanParameters(
    world_frame="world_frame",
    tcp_frame="camera_frame",
    cam_to_obj_zoffset=0.6,
    sweep_angle_start=-0.5,
    sweep_angle_end=0.5,
    num_scan_points=5,
    reachable_scan_points_ratio=1.0,
)
DEFAULT_DETECTION = DetectionParameters(
    frame_id="world_frame",
    threshold=0.01,
    k_search=50,
    min_cluster_size=10,
    max_cluster_size=10000,
    voxel_leaf=0.01,
)
DEFAULT_BLENDING = BlendingParameters(
    tool_radius=0.5,
    margin=0.1,
    overlap=0.1,
    approach_spd=0.005,
    blending_spd=0.3,
    retract_spd=0.02,
    traverse_spd=0.05,
    discretization=0.01,
    safe_traverse_height=0.05,
)


class FakeScanner(RobotScanStage):
    """Scripted scan: reaches `poses_reached` poses, optionally slowly."""

    def __init__(self, poses_reached: int = 3, delay: float = 0.0):
        self.poses_reached = poses_reached
        self.delay = delay
        self.scan_calls = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()
        self._latest = []

    def plan_scan_poses(self, params):
        return [Pose(position=(float(i), 0.0, params.cam_to_obj_zoffset))
                for i in range(params.num_scan_points)]

    def scan(self, params, sink):
        with self._lock:
            self.scan_calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            poses = self.plan_scan_poses(params)[: self.poses_reached]
            for _ in poses:
                sink.add_cloud(np.zeros((4, 3)))
            self._latest = poses
            return len(poses)
        finally:
            with self._lock:
                self.active -= 1

    def get_latest_scan_poses(self):
        return list(self._latest)


class FakeDetector(SurfaceDetectionStage):
    """Scripted detection: succeeds with `surface_count` surfaces unless told to fail."""

    def __init__(self, surface_count: int = 3, succeed: bool = True, delay: float = 0.0):
        self.surface_count = surface_count
        self.succeed = succeed
        self.delay = delay
        self.error = None
        self.find_calls = 0
        self.clear_calls = 0
        self.clouds = []
        self.last_params = None
        self._count = 0

    def add_cloud(self, cloud):
        self.clouds.append(cloud)

    def clear_results(self):
        self.clear_calls += 1
        self.clouds = []

    def find_surfaces(self, params):
        self.find_calls += 1
        self.last_params = params
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self._count = self.surface_count if self.succeed else 0
        return self.succeed and self.surface_count > 0

    def get_meshes(self):
        return [
            Mesh(vertices=np.eye(3) * (i + 1), triangles=np.array([[0, 1, 2]]))
            for i in range(self._count)
        ]

    def get_surface_markers(self):
        return [
            SurfaceMarker(id=i, ns="test", frame_id="world_frame",
                          points=((0.0, 0.0, float(i)), (1.0, 0.0, float(i)), (0.0, 1.0, float(i))))
            for i in range(self._count)
        ]

    def get_region_colored_cloud(self):
        return np.full((self._count * 10, 6), float(self.find_calls))


@pytest.fixture()
def store() -> ParameterStore:
    return ParameterStore({
        ParameterGroup.SCAN: DEFAULT_SCAN,
        ParameterGroup.DETECTION: DEFAULT_DETECTION,
        ParameterGroup.BLENDING: DEFAULT_BLENDING,
    })


@pytest.fixture()
def scanner() -> FakeScanner:
    return FakeScanner()


@pytest.fixture()
def detector() -> FakeDetector:
    return FakeDetector()


@pytest.fixture()
def selection() -> InteractiveSurfaceServer:
    return InteractiveSurfaceServer()


@pytest.fixture()
def controller(store, scanner, detector, selection):
    ctrl = PipelineController(
        store=store,
        scanner=scanner,
        detector=detector,
        selection=selection,
        cache=ResultCache(),
        scan_path_topic=Topic("robot_scan_path_preview"),
    )
    yield ctrl
    ctrl.shutdown()
