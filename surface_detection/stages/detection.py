"""Simulated surface detection.

Segments the accumulated cloud into horizontal height bands and turns
every band of acceptable size into a rectangular surface. Good enough to
drive the pipeline end to end; not a surface-fitting algorithm.
"""

import threading
from typing import List

import numpy as np
from loguru import logger

from surface_detection.params.models import DetectionParameters
from surface_detection.stages.base import Mesh, SurfaceDetectionStage, SurfaceMarker

MARKER_NS = "surface_detection"

# Region colours cycled over the found surfaces (0-255)
PALETTE = np.array([
    [230, 25, 75],
    [60, 180, 75],
    [255, 225, 25],
    [0, 130, 200],
    [245, 130, 48],
    [145, 30, 180],
], dtype=np.float64)


def voxel_downsample(points: np.ndarray, leaf: float) -> np.ndarray:
    """Replace the points of every occupied voxel by their centroid."""
    if leaf <= 0 or len(points) == 0:
        return points
    keys = np.floor(points / leaf).astype(np.int64)
    _, inverse, counts = np.unique(keys, axis=0, return_inverse=True, return_counts=True)
    inverse = inverse.reshape(-1)
    sums = np.zeros((len(counts), 3))
    np.add.at(sums, inverse, points)
    return sums / counts[:, None]


def split_height_bands(points: np.ndarray, threshold: float) -> List[np.ndarray]:
    """Group points whose sorted heights are separated by gaps no larger than threshold."""
    if len(points) == 0:
        return []
    order = np.argsort(points[:, 2], kind="stable")
    gaps = np.diff(points[order, 2]) > threshold
    cuts = np.flatnonzero(gaps) + 1
    return [points[band] for band in np.split(order, cuts)]


def rectangle_mesh(points: np.ndarray) -> Mesh:
    """Axis-aligned rectangle covering the band at its mean height."""
    (x0, y0), (x1, y1) = points[:, :2].min(axis=0), points[:, :2].max(axis=0)
    z = float(points[:, 2].mean())
    vertices = np.array([[x0, y0, z], [x1, y0, z], [x1, y1, z], [x0, y1, z]])
    triangles = np.array([[0, 1, 2], [0, 2, 3]])
    return Mesh(vertices=vertices, triangles=triangles)


class SimulatedSurfaceDetection(SurfaceDetectionStage):

    def __init__(self):
        self._lock = threading.Lock()
        self._clouds: List[np.ndarray] = []
        self._meshes: List[Mesh] = []
        self._markers: List[SurfaceMarker] = []
        self._region_cloud = np.empty((0, 6))

    def initialize(self) -> None:
        logger.info("Simulated surface detection ready")

    def add_cloud(self, cloud: np.ndarray) -> None:
        cloud = np.asarray(cloud, dtype=np.float64)
        if cloud.ndim != 2 or cloud.shape[1] < 3:
            logger.warning(f"Ignoring cloud with shape {cloud.shape}")
            return
        with self._lock:
            self._clouds.append(cloud[:, :3])

    def clear_results(self) -> None:
        with self._lock:
            self._clouds = []
            self._meshes = []
            self._markers = []
            self._region_cloud = np.empty((0, 6))

    def find_surfaces(self, params: DetectionParameters) -> bool:
        with self._lock:
            clouds = list(self._clouds)

        self._meshes, self._markers = [], []
        self._region_cloud = np.empty((0, 6))

        if not clouds:
            logger.error("No clouds accumulated, nothing to segment")
            return False

        points = voxel_downsample(np.vstack(clouds), params.voxel_leaf)
        logger.info(f"Segmenting {len(points)} points (voxel leaf {params.voxel_leaf})")

        meshes, markers, regions = [], [], []
        for band in split_height_bands(points, params.threshold):
            if len(band) < params.min_cluster_size:
                continue
            if params.max_cluster_size > 0 and len(band) > params.max_cluster_size:
                continue

            mesh = rectangle_mesh(band)
            rgb = PALETTE[len(meshes) % len(PALETTE)]
            triangle_points = tuple(
                tuple(float(c) for c in mesh.vertices[i])
                for i in mesh.triangles.reshape(-1)
            )
            markers.append(SurfaceMarker(
                id=len(meshes),
                ns=MARKER_NS,
                frame_id=params.frame_id,
                points=triangle_points,
                color=(*(rgb / 255.0), 1.0),
            ))
            meshes.append(mesh)
            regions.append(np.hstack([band, np.tile(rgb, (len(band), 1))]))

        if not meshes:
            logger.warning("No surfaces found")
            return False

        self._meshes = meshes
        self._markers = markers
        self._region_cloud = np.vstack(regions)
        logger.info(f"Found {len(meshes)} surfaces")
        return True

    def get_meshes(self) -> List[Mesh]:
        return list(self._meshes)

    def get_surface_markers(self) -> List[SurfaceMarker]:
        return list(self._markers)

    def get_region_colored_cloud(self) -> np.ndarray:
        return self._region_cloud.copy()
