"""Tests for action dispatch, parameter resolution and the result cache."""

from __future__ import annotations

import threading
import time
from dataclasses import replace

import pytest

from surface_detection.errors import UnsupportedActionError
from surface_detection.params import ParameterGroup
from surface_detection.pipeline import (
    ACTION_TABLE,
    DetectionAction,
    DetectionResult,
    ParameterOverrides,
    ParameterQuery,
)

from conftest import DEFAULT_BLENDING, DEFAULT_DETECTION, DEFAULT_SCAN

SCAN = ParameterGroup.SCAN
DETECTION = ParameterGroup.DETECTION

OVERRIDE_SCAN = replace(DEFAULT_SCAN, num_scan_points=7, cam_to_obj_zoffset=0.8)
OVERRIDE_DETECTION = replace(DEFAULT_DETECTION, threshold=0.02)

MUTATING_ACTIONS = [a for a, spec in ACTION_TABLE.items() if spec.groups]


def _perturb(store):
    """Move every current group away from its default."""
    store.set_current(SCAN, replace(DEFAULT_SCAN, num_scan_points=99))
    store.set_current(DETECTION, replace(DEFAULT_DETECTION, threshold=0.5))


class TestParameterResolution:
    @pytest.mark.parametrize("action", MUTATING_ACTIONS, ids=lambda a: a.name)
    def test_use_defaults_resets_touched_groups_only(self, controller, store, action):
        _perturb(store)
        before = {g: store.get_current(g) for g in (SCAN, DETECTION)}

        controller.handle(action, use_defaults=True)

        touched = ACTION_TABLE[action].groups
        for group in (SCAN, DETECTION):
            if group in touched:
                assert store.get_current(group) == store.get_default(group)
            else:
                assert store.get_current(group) == before[group]

    @pytest.mark.parametrize("action", MUTATING_ACTIONS, ids=lambda a: a.name)
    def test_overrides_apply_to_touched_groups_only(self, controller, store, action):
        _perturb(store)
        before = {g: store.get_current(g) for g in (SCAN, DETECTION)}
        overrides = ParameterOverrides(robot_scan=OVERRIDE_SCAN, surface_detection=OVERRIDE_DETECTION)

        controller.handle(action, overrides=overrides, use_defaults=False)

        touched = ACTION_TABLE[action].groups
        expected = {SCAN: OVERRIDE_SCAN, DETECTION: OVERRIDE_DETECTION}
        for group in (SCAN, DETECTION):
            if group in touched:
                assert store.get_current(group) == expected[group]
            else:
                assert store.get_current(group) == before[group]

    def test_find_only_never_resets_scan_parameters(self, controller, store):
        custom = replace(DEFAULT_SCAN, num_scan_points=42)
        store.set_current(SCAN, custom)

        controller.handle(DetectionAction.FIND_ONLY, use_defaults=True)

        assert store.get_current(SCAN) == custom
        assert store.get_current(DETECTION) == DEFAULT_DETECTION

    def test_missing_override_group_keeps_current(self, controller, store):
        custom = replace(DEFAULT_DETECTION, threshold=0.3)
        store.set_current(DETECTION, custom)

        controller.handle(DetectionAction.FIND_ONLY, overrides=ParameterOverrides(), use_defaults=False)

        assert store.get_current(DETECTION) == custom

    def test_blending_parameters_untouched_by_detection_actions(self, controller, store):
        for action in MUTATING_ACTIONS:
            controller.handle(action, use_defaults=True)
        assert store.get_current(ParameterGroup.BLENDING) == DEFAULT_BLENDING


class TestParameterQueries:
    def test_get_current_returns_scan_and_detection(self, controller, store):
        store.set_current(DETECTION, OVERRIDE_DETECTION)

        response = controller.handle(DetectionAction.GET_CURRENT_PARAMETERS)

        assert response.surface_detection == OVERRIDE_DETECTION
        assert response.robot_scan == DEFAULT_SCAN
        assert response.blending_plan is None
        assert response.surfaces_found is False

    def test_get_default_ignores_current(self, controller, store):
        _perturb(store)

        response = controller.handle(DetectionAction.GET_DEFAULT_PARAMETERS)

        assert response.robot_scan == DEFAULT_SCAN
        assert response.surface_detection == DEFAULT_DETECTION

    def test_parameter_query_includes_blending_plan(self, controller):
        params = controller.get_parameters(ParameterQuery.GET_DEFAULT_PARAMETERS)

        assert params.blending_plan.tool_radius == 0.5
        assert params.blending_plan.margin == 0.1
        assert params.robot_scan == DEFAULT_SCAN

    def test_unknown_query_is_rejected(self, controller):
        with pytest.raises(UnsupportedActionError):
            controller.get_parameters(7)


class TestScanAndFind:
    def test_scan_find_and_return(self, controller, scanner, detector, selection):
        response = controller.handle(DetectionAction.SCAN_FIND_AND_RETURN, use_defaults=True)

        assert response.surfaces_found is True
        assert len(response.surfaces) == 3
        assert scanner.scan_calls == 1
        assert detector.clear_calls == 1
        assert len(detector.clouds) == 3
        assert len(selection.get_surfaces()) == 3

    def test_scan_and_find_only_clears_payload(self, controller):
        response = controller.handle(DetectionAction.SCAN_AND_FIND_ONLY, use_defaults=True)

        assert response.surfaces_found is True
        assert response.surfaces == []
        assert len(controller.cache.get().surfaces) == 3

    def test_scan_publishes_path_preview(self, controller):
        sub = controller.scan_path_topic.subscribe()

        controller.handle(DetectionAction.SCAN_AND_FIND_ONLY, use_defaults=True)

        poses = sub.get(timeout=1.0)
        assert len(poses) == DEFAULT_SCAN.num_scan_points

    def test_publish_scan_path_runs_no_stage(self, controller, scanner, detector):
        sub = controller.scan_path_topic.subscribe()

        response = controller.handle(
            DetectionAction.PUBLISH_SCAN_PATH,
            overrides=ParameterOverrides(robot_scan=OVERRIDE_SCAN),
        )

        assert response.surfaces_found is False
        assert len(sub.get(timeout=1.0)) == 7
        assert scanner.scan_calls == 0
        assert detector.find_calls == 0

    def test_zero_poses_never_invokes_find(self, controller, scanner, detector):
        scanner.poses_reached = 0
        initial = controller.cache.get()

        response = controller.handle(DetectionAction.SCAN_AND_FIND_ONLY, use_defaults=True)

        assert response.surfaces_found is False
        assert detector.find_calls == 0
        assert controller.cache.get() is initial
        assert controller.cache.get() == DetectionResult()

    def test_failed_scan_keeps_previous_result_and_cloud(self, controller, scanner):
        controller.handle(DetectionAction.SCAN_AND_FIND_ONLY, use_defaults=True)
        result, cloud = controller.cache.snapshot()

        scanner.poses_reached = 0
        controller.handle(DetectionAction.SCAN_AND_FIND_ONLY, use_defaults=True)

        current_result, current_cloud = controller.cache.snapshot()
        assert current_result is result
        assert current_cloud is cloud

    def test_failed_find_clears_cloud_but_keeps_result(self, controller, detector):
        controller.handle(DetectionAction.FIND_ONLY, use_defaults=True)
        result = controller.cache.get()
        assert controller.cache.region_cloud() is not None

        detector.succeed = False
        response = controller.handle(DetectionAction.FIND_AND_RETURN, use_defaults=True)

        assert response.surfaces_found is False
        assert response.surfaces == []
        assert controller.cache.get() is result
        assert controller.cache.region_cloud() is None

    def test_stage_exception_is_reported_not_raised(self, controller, detector):
        detector.error = RuntimeError("segmentation crashed")

        response = controller.handle(DetectionAction.FIND_AND_RETURN, use_defaults=True)

        assert response.surfaces_found is False
        assert "segmentation crashed" in response.message
        assert controller.status().state == "idle"

    def test_state_returns_to_idle(self, controller, scanner):
        controller.handle(DetectionAction.SCAN_FIND_AND_RETURN, use_defaults=True)
        assert controller.status().state == "idle"

        scanner.poses_reached = 0
        controller.handle(DetectionAction.SCAN_FIND_AND_RETURN, use_defaults=True)
        assert controller.status().state == "idle"


class TestLatestResults:
    def test_initial_latest_results_are_empty(self, controller):
        response = controller.handle(DetectionAction.RETURN_LATEST_RESULTS)

        assert response.surfaces_found is False
        assert response.surfaces == []
        assert response.surface_detection is None

    def test_find_and_return_with_override_is_cached(self, controller):
        overrides = ParameterOverrides(surface_detection=OVERRIDE_DETECTION)

        response = controller.handle(DetectionAction.FIND_AND_RETURN, overrides=overrides)
        latest = controller.handle(DetectionAction.RETURN_LATEST_RESULTS)

        assert response.surfaces_found is True
        assert len(response.surfaces) == 3
        assert latest.surfaces == response.surfaces
        assert latest.surface_detection.threshold == 0.02

    def test_latest_results_are_idempotent(self, controller, detector):
        controller.handle(DetectionAction.SCAN_FIND_AND_RETURN, use_defaults=True)
        detector.succeed = False
        controller.handle(DetectionAction.FIND_ONLY, use_defaults=True)

        first = controller.handle(DetectionAction.RETURN_LATEST_RESULTS)
        second = controller.handle(DetectionAction.RETURN_LATEST_RESULTS)

        assert first == second
        assert first.surfaces_found is True

    def test_latest_results_carry_scan_poses(self, controller):
        controller.handle(DetectionAction.SCAN_AND_FIND_ONLY, use_defaults=True)

        latest = controller.handle(DetectionAction.RETURN_LATEST_RESULTS)

        assert len(latest.robot_scan_poses) == 3


class TestTimeouts:
    def test_timeout_reports_failure_and_keeps_cache(self, controller, detector):
        detector.delay = 0.5
        initial = controller.cache.snapshot()

        response = controller.handle(DetectionAction.FIND_AND_RETURN, use_defaults=True, timeout=0.05)

        assert response.surfaces_found is False
        assert "timed out" in response.message
        assert controller.cache.get() is initial[0]
        assert controller.status().state == "idle"

    def test_timed_out_calls_do_not_pile_up(self, controller, detector):
        detector.delay = 0.3
        first = controller.handle(DetectionAction.FIND_AND_RETURN, use_defaults=True, timeout=0.05)
        retries = [
            controller.handle(DetectionAction.FIND_AND_RETURN, use_defaults=True, timeout=0.01)
            for _ in range(5)
        ]

        assert all("timed out" in r.message for r in [first] + retries)
        time.sleep(0.6)
        assert detector.find_calls == 1

    def test_generous_timeout_succeeds(self, controller):
        response = controller.handle(DetectionAction.FIND_AND_RETURN, use_defaults=True, timeout=5.0)
        assert response.surfaces_found is True


class TestDispatch:
    @pytest.mark.parametrize("action", [0, 9, 3.5, "NOT_AN_ACTION", None])
    def test_unsupported_action_raises(self, controller, action):
        with pytest.raises(UnsupportedActionError):
            controller.handle(action)

    def test_action_accepts_wire_values(self, controller):
        response = controller.handle(2.0)
        assert response.robot_scan == DEFAULT_SCAN

    def test_process_path_not_implemented(self, controller):
        assert controller.plan_process_path() is False


class TestConcurrency:
    def test_at_most_one_scan_in_flight(self, controller, scanner):
        scanner.delay = 0.05
        threads = [
            threading.Thread(
                target=controller.handle,
                args=(DetectionAction.SCAN_FIND_AND_RETURN,),
                kwargs={"use_defaults": True},
            )
            for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert scanner.scan_calls == 4
        assert scanner.max_active == 1

    def test_cache_and_cloud_swap_together(self, controller, detector):
        # Each find stamps its cloud with the find count; cached result and
        # cloud must always come from the same find.
        stop = threading.Event()
        mismatches = []

        def reader():
            while not stop.is_set():
                result, cloud = controller.cache.snapshot()
                if result.surfaces_found and cloud is not None:
                    if result.surface_detection.k_search != int(cloud[0, 0]):
                        mismatches.append((result.surface_detection.k_search, cloud[0, 0]))

        t = threading.Thread(target=reader)
        t.start()
        try:
            for _ in range(30):
                overrides = ParameterOverrides(
                    surface_detection=replace(DEFAULT_DETECTION, k_search=detector.find_calls + 1)
                )
                controller.handle(DetectionAction.FIND_ONLY, overrides=overrides)
        finally:
            stop.set()
            t.join(timeout=5)

        assert mismatches == []
