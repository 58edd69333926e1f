import logging
import threading
import time
from concurrent import futures
from dataclasses import dataclass, asdict
from typing import Optional, Sequence

from surface_detection.errors import StageError, StageTimeoutError
from surface_detection.fsm import PipelineFSM
from surface_detection.params.models import ParameterGroup
from surface_detection.params.store import ParameterStore
from surface_detection.pipeline.actions import (
    ACTION_TABLE,
    DetectionAction,
    ParameterQuery,
    Reply,
    SelectionAction,
    Step,
    parse_action,
)
from surface_detection.pipeline.cache import ResultCache
from surface_detection.pipeline.messages import (
    DetectionResult,
    ParameterOverrides,
    ParametersResponse,
    SurfaceDetectionResponse,
)
from surface_detection.pipeline.topics import Topic
from surface_detection.stages.base import RobotScanStage, SelectionStage, SurfaceDetectionStage

SCAN = ParameterGroup.SCAN
DETECTION = ParameterGroup.DETECTION
BLENDING = ParameterGroup.BLENDING


@dataclass
class PipelineStatus:
    state: str
    has_results: bool
    region_cloud_available: bool
    surface_count: int
    selected_count: int

    def to_dict(self):
        return asdict(self)


class PipelineController:
    """
    Orchestrates the surface detection workflow:
    - Resolves parameters (current, default or caller override)
    - Runs the scan and surface extraction stages
    - Keeps the latest successful result and its region cloud
    - Forwards selection requests to the surface server
    - Provides interface for gRPC
    """

    def __init__(
        self,
        store: ParameterStore,
        scanner: RobotScanStage,
        detector: SurfaceDetectionStage,
        selection: SelectionStage,
        cache: ResultCache = None,
        scan_path_topic: Topic = None,
        callbacks: dict = None,
    ):
        self.log = logging.getLogger("PipelineController")

        self.store = store
        self.scanner = scanner
        self.detector = detector
        self.selection = selection
        self.cache = cache or ResultCache()
        self.scan_path_topic = scan_path_topic or Topic("robot_scan_path_preview", queue_size=1)

        # Guards parameter resolution, stage runs and cache replacement
        self._lock = threading.Lock()

        # Single stage worker: at most one stage call in flight, even after a timeout
        self._stage_executor = futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="stage")

        self.fsm = PipelineFSM(callbacks=self._fsm_callbacks(callbacks))

    # ----------------------------------------------------------------------
    # FSM CALLBACKS
    # ----------------------------------------------------------------------

    def _fsm_callbacks(self, user_callbacks):
        """Merge internal callbacks with user-provided ones."""
        cb = user_callbacks.copy() if user_callbacks else {}
        cb.update(
            {
                "on_enter_scanning": self._on_enter_scanning,
                "on_enter_finding": self._on_enter_finding,
                "on_enter_idle": self._on_enter_idle,
            }
        )
        return cb

    def _on_enter_scanning(self):
        self.log.info("Scanning...")

    def _on_enter_finding(self):
        self.log.info("Finding surfaces...")

    def _on_enter_idle(self):
        self.log.debug("Pipeline idle")

    # ----------------------------------------------------------------------
    # STAGE HELPERS
    # ----------------------------------------------------------------------

    def _call_stage(self, name, func, deadline, *args):
        """Run a stage call on the stage worker, honouring the action deadline."""
        remaining = None
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise StageTimeoutError(f"Timed out before '{name}'", module="stage")

        future = self._stage_executor.submit(func, *args)
        try:
            return future.result(timeout=remaining)
        except futures.TimeoutError:
            # Drops the call if it is still queued behind an earlier one
            future.cancel()
            raise StageTimeoutError(f"'{name}' timed out", module="stage")
        except StageError:
            raise
        except Exception as e:
            raise StageError(f"'{name}' raised: {e}", module="stage") from e

    def _resolve_parameters(self, groups, overrides: Optional[ParameterOverrides], use_defaults: bool):
        for group in groups:
            if use_defaults:
                self.store.reset_current_to_default(group)
                continue

            value = None
            if overrides is not None:
                value = getattr(overrides, group.value)
            if value is None:
                self.log.debug(f"No override for {group.value}, keeping current")
                continue
            self.store.set_current(group, value)

    def _publish_scan_path(self, deadline):
        params = self.store.get_current(SCAN)
        poses = self._call_stage("plan_scan_poses", self.scanner.plan_scan_poses, deadline, params)
        self.scan_path_topic.publish(poses)
        self.log.info(f"Published scan path preview ({len(poses)} poses)")

    def _run_robot_scan(self, deadline):
        self.fsm.start_scan()
        self._publish_scan_path(deadline)
        self._call_stage("clear_results", self.detector.clear_results, deadline)

        self.log.info("Starting scan")
        params = self.store.get_current(SCAN)
        reached = self._call_stage("scan", self.scanner.scan, deadline, params, self.detector)
        if reached <= 0:
            raise StageError("Scan failed, no scan poses reached", module="scan")

        self.log.info(f"Scan points reached {reached}")
        self.fsm.scan_done()

    def _find_surfaces(self, deadline):
        if self.fsm.state == "idle":
            self.fsm.start_find()

        params = self.store.get_current(DETECTION)
        try:
            if not self._call_stage("find_surfaces", self.detector.find_surfaces, deadline, params):
                raise StageError("No surfaces found", module="find")
            meshes = self._call_stage("get_meshes", self.detector.get_meshes, deadline)
            markers = self._call_stage("get_surface_markers", self.detector.get_surface_markers, deadline)
            cloud = self._call_stage("get_region_colored_cloud", self.detector.get_region_colored_cloud, deadline)
            poses = self._call_stage("get_latest_scan_poses", self.scanner.get_latest_scan_poses, deadline)
        except StageError:
            self.cache.clear_region_cloud()
            raise

        self.selection.replace_surfaces(meshes)

        result = DetectionResult(
            surfaces_found=True,
            surfaces=tuple(markers),
            surface_detection=params,
            robot_scan_poses=tuple(poses),
        )
        self.cache.replace(result, cloud)
        self.fsm.find_done()
        return list(markers)

    # ----------------------------------------------------------------------
    # PUBLIC API FOR gRPC OR LOCAL USE
    # ----------------------------------------------------------------------

    def handle(
        self,
        action,
        overrides: Optional[ParameterOverrides] = None,
        use_defaults: bool = False,
        timeout: Optional[float] = None,
    ) -> SurfaceDetectionResponse:
        """
        Run one detection-protocol action.

        Stage failures (no poses reached, no surfaces, stage exceptions,
        timeouts) come back as surfaces_found=False; only an unknown action
        raises (UnsupportedActionError).

        :param overrides: Parameter groups to apply when use_defaults is False.
                          A group left as None keeps its current value.
        :param timeout: Optional bound in seconds on the stage portion.
        """
        action = parse_action(DetectionAction, action)
        spec = ACTION_TABLE[action]
        self.log.info(f"{action.name} requested (use_defaults={use_defaults})")

        if spec.reply is Reply.CURRENT_PARAMETERS:
            return SurfaceDetectionResponse(
                robot_scan=self.store.get_current(SCAN),
                surface_detection=self.store.get_current(DETECTION),
            )
        if spec.reply is Reply.DEFAULT_PARAMETERS:
            return SurfaceDetectionResponse(
                robot_scan=self.store.get_default(SCAN),
                surface_detection=self.store.get_default(DETECTION),
            )
        if spec.reply is Reply.LATEST_RESULTS:
            return self.cache.get().to_response()

        response = SurfaceDetectionResponse()
        deadline = None if timeout is None else time.monotonic() + timeout

        surfaces = []
        with self._lock:
            self._resolve_parameters(spec.groups, overrides, use_defaults)
            try:
                for step in spec.steps:
                    if step is Step.PREVIEW:
                        self._publish_scan_path(deadline)
                    elif step is Step.SCAN:
                        self._run_robot_scan(deadline)
                    elif step is Step.FIND:
                        surfaces = self._find_surfaces(deadline)
                        response.surfaces_found = True
            except StageError as e:
                self.log.error(f"{action.name} failed: {e}")
                response.message = e.message
                if self.fsm.is_busy():
                    self.fsm.fail()
            except Exception as e:
                self.log.error(f"{action.name} failed with exception: {e}", exc_info=True)
                response.surfaces_found = False
                response.message = str(e)
                if self.fsm.is_busy():
                    self.fsm.fail()

        if spec.reply is Reply.SURFACES:
            response.surfaces = surfaces if response.surfaces_found else []
        return response

    def get_parameters(self, query) -> ParametersResponse:
        """Parameter-query protocol: all three groups, current or default."""
        query = parse_action(ParameterQuery, query)
        getter = self.store.get_current
        if query is ParameterQuery.GET_DEFAULT_PARAMETERS:
            getter = self.store.get_default
        return ParametersResponse(
            surface_detection=getter(DETECTION),
            robot_scan=getter(SCAN),
            blending_plan=getter(BLENDING),
        )

    def select_surfaces(self, action, surface_ids: Sequence[str] = ()):
        """Selection-control protocol. Each call is a single mutation batch."""
        action = parse_action(SelectionAction, action)
        surface_ids = list(surface_ids or [])
        self.log.info(f"{action.name} requested ({len(surface_ids)} targets)")

        if action is SelectionAction.SELECT:
            self.selection.set_selection_flags(surface_ids, True)
        elif action is SelectionAction.DESELECT:
            self.selection.set_selection_flags(surface_ids, False)
        elif action is SelectionAction.SELECT_ALL:
            self.selection.select_all(True)
        elif action is SelectionAction.DESELECT_ALL:
            self.selection.select_all(False)
        elif action is SelectionAction.HIDE_ALL:
            self.selection.show_all(False)
        elif action is SelectionAction.SHOW_ALL:
            self.selection.show_all(True)

    def plan_process_path(self) -> bool:
        self.log.warning("Process path planning not implemented")
        return False

    def status(self) -> PipelineStatus:
        result, cloud = self.cache.snapshot()
        surfaces = self.selection.get_surfaces()
        return PipelineStatus(
            state=self.fsm.state,
            has_results=result.surfaces_found,
            region_cloud_available=cloud is not None and len(cloud) > 0,
            surface_count=len(surfaces),
            selected_count=sum(1 for s in surfaces if s.selected),
        )

    def shutdown(self):
        self._stage_executor.shutdown(wait=False)
        self.fsm.abort()
        self.log.info("Pipeline controller shut down")
