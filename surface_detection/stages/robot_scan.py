"""Simulated robot scan.

Sweeps a camera along an arc above the work cell and returns a noisy
sample of a synthetic scene at every reachable pose. Stands in for the
robot + depth camera pair when no hardware is attached.
"""

import math
import time
from typing import List, Optional

import numpy as np
from loguru import logger

from surface_detection.errors import StartupError
from surface_detection.params.models import ScanParameters
from surface_detection.stages.base import CloudSink, Pose, RobotScanStage


def make_tabletop_scene(rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """A floor patch and three box tops at distinct heights, as (N, 3) points."""
    rng = rng or np.random.default_rng(0)
    patches = [
        # (x0, y0, width, depth, height, count)
        (-0.5, -0.5, 1.0, 1.0, 0.005, 2000),
        (-0.35, -0.35, 0.2, 0.2, 0.105, 400),
        (0.1, -0.3, 0.25, 0.15, 0.255, 400),
        (-0.1, 0.15, 0.2, 0.25, 0.405, 400),
    ]
    points = []
    for x0, y0, w, d, z, n in patches:
        xy = rng.uniform((x0, y0), (x0 + w, y0 + d), size=(n, 2))
        points.append(np.column_stack([xy, np.full(n, z)]))
    return np.vstack(points)


class SimulatedRobotScan(RobotScanStage):

    def __init__(
        self,
        scene: Optional[np.ndarray] = None,
        sample_ratio: float = 0.5,
        noise: float = 0.001,
        pose_delay: float = 0.0,
        seed: int = 0,
    ):
        """
        :param scene: (N, 3) points seen by the camera; a tabletop scene by default
        :param sample_ratio: Fraction of the scene captured at each pose
        :param noise: Standard deviation of the depth noise in metres
        :param pose_delay: Seconds spent moving to each pose
        """
        self.rng = np.random.default_rng(seed)
        self.scene = scene if scene is not None else make_tabletop_scene(self.rng)
        self.sample_ratio = sample_ratio
        self.noise = noise
        self.pose_delay = pose_delay
        self._latest_poses: List[Pose] = []

    def initialize(self) -> None:
        if self.scene.ndim != 2 or self.scene.shape[1] != 3 or len(self.scene) == 0:
            raise StartupError(f"Scene must be a non-empty (N, 3) array, got {self.scene.shape}",
                               module="SimulatedRobotScan")
        logger.info(f"Simulated robot scan ready ({len(self.scene)} scene points)")

    def plan_scan_poses(self, params: ScanParameters) -> List[Pose]:
        if params.num_scan_points <= 0:
            return []

        poses = []
        for angle in np.linspace(params.sweep_angle_start, params.sweep_angle_end,
                                 params.num_scan_points):
            position = (
                params.cam_to_obj_xoffset + params.cam_to_obj_zoffset * math.sin(angle),
                0.0,
                params.cam_to_obj_zoffset * math.cos(angle),
            )
            tilt = float(angle) + params.cam_tilt_angle
            orientation = (0.0, math.sin(tilt / 2.0), 0.0, math.cos(tilt / 2.0))
            poses.append(Pose(position=position, orientation=orientation))
        return poses

    @staticmethod
    def _is_reachable(index: int, ratio: float) -> bool:
        # Spreads the unreachable poses evenly along the path
        return math.floor((index + 1) * ratio) > math.floor(index * ratio)

    def scan(self, params: ScanParameters, sink: CloudSink) -> int:
        poses = self.plan_scan_poses(params)
        reached = []

        for index, pose in enumerate(poses):
            if not self._is_reachable(index, params.reachable_scan_points_ratio):
                logger.warning(f"Scan pose {index} unreachable")
                if params.stop_on_planning_error:
                    logger.error("Stopping scan on planning error")
                    break
                continue

            if self.pose_delay > 0:
                time.sleep(self.pose_delay)

            count = max(1, int(len(self.scene) * self.sample_ratio))
            idx = self.rng.choice(len(self.scene), size=count, replace=False)
            cloud = self.scene[idx] + self.rng.normal(scale=self.noise, size=(count, 3))
            sink.add_cloud(cloud)
            reached.append(pose)
            logger.debug(f"Scan pose {index} reached, {count} points captured")

        self._latest_poses = reached
        logger.info(f"Scan finished: {len(reached)}/{len(poses)} poses reached")
        return len(reached)

    def get_latest_scan_poses(self) -> List[Pose]:
        return list(self._latest_poses)
