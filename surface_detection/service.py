import logging
from typing import Optional

from surface_detection.errors import StartupError
from surface_detection.params.loader import ServiceConfig
from surface_detection.params.store import ParameterStore
from surface_detection.pipeline.cache import ResultCache
from surface_detection.pipeline.controller import PipelineController
from surface_detection.pipeline.notifier import ChangeNotifier
from surface_detection.pipeline.publisher import PeriodicPublisher
from surface_detection.pipeline.topics import Topic
from surface_detection.stages import (
    InteractiveSurfaceServer,
    RobotScanStage,
    SelectionStage,
    SimulatedRobotScan,
    SimulatedSurfaceDetection,
    SurfaceDetectionStage,
)

SELECTED_SURFACES_CHANGED_TOPIC = "selected_surfaces_changed"
ROBOT_SCAN_PATH_PREVIEW_TOPIC = "robot_scan_path_preview"
REGION_POINT_CLOUD_TOPIC = "region_colored_cloud"


class SurfaceDetectionService:
    """
    Wires the stages, the pipeline controller and the outbound topics.

    `start()` initializes every stage and only then begins notifying and
    publishing; a stage that fails to initialize aborts startup.
    """

    def __init__(
        self,
        config: ServiceConfig,
        scanner: Optional[RobotScanStage] = None,
        detector: Optional[SurfaceDetectionStage] = None,
        selection: Optional[SelectionStage] = None,
    ):
        self.log = logging.getLogger("SurfaceDetectionService")
        self.config = config

        self.scanner = scanner or SimulatedRobotScan()
        self.detector = detector or SimulatedSurfaceDetection()
        self.selection = selection or InteractiveSurfaceServer()

        # --- Outbound topics ---
        self.selected_surfaces_changed = Topic(SELECTED_SURFACES_CHANGED_TOPIC, queue_size=10)
        self.scan_path_preview = Topic(ROBOT_SCAN_PATH_PREVIEW_TOPIC, queue_size=1)
        self.region_cloud = Topic(REGION_POINT_CLOUD_TOPIC, queue_size=1)

        # --- Core components ---
        self.store = ParameterStore(config.parameter_groups())
        self.cache = ResultCache()
        self.controller = PipelineController(
            store=self.store,
            scanner=self.scanner,
            detector=self.detector,
            selection=self.selection,
            cache=self.cache,
            scan_path_topic=self.scan_path_preview,
        )
        self.notifier = ChangeNotifier(self.selection, self.selected_surfaces_changed)
        self.publisher = PeriodicPublisher(
            self.cache,
            self.region_cloud,
            enabled=config.publish_region_point_cloud,
            period=config.publish_period,
        )
        self.started = False

    def start(self):
        for name, stage in (
            ("robot scan", self.scanner),
            ("surface detection", self.detector),
            ("surface server", self.selection),
        ):
            try:
                stage.initialize()
            except StartupError:
                raise
            except Exception as e:
                raise StartupError(f"{name} initialization failed: {e}", module=type(stage).__name__) from e

        self.notifier.register()
        self.publisher.start()
        self.started = True
        self.log.info("Surface detection service initialization succeeded")

    def stop(self):
        self.publisher.stop(timeout=2.0)
        self.controller.shutdown()
        self.started = False
        self.log.info("Surface detection service stopped")
