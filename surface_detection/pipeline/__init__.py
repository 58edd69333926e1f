"""
Pipeline package for the surface detection service.

This package contains the components responsible for:
- Mapping detection actions to stage runs (actions, controller)
- Keeping the latest successful result and region cloud (cache)
- Broadcasting outbound messages (topics)
- Notifying selection changes (notifier)
- Republishing the region cloud periodically (publisher)
"""

from .actions import DetectionAction, SelectionAction, ParameterQuery, ACTION_TABLE
from .cache import ResultCache
from .controller import PipelineController, PipelineStatus
from .messages import (
    DetectionResult,
    ParameterOverrides,
    ParametersResponse,
    SelectedSurfacesChanged,
    SurfaceDetectionResponse,
)
from .notifier import ChangeNotifier
from .publisher import PeriodicPublisher
from .topics import Topic, Subscription


__all__ = [
    "DetectionAction",
    "SelectionAction",
    "ParameterQuery",
    "ACTION_TABLE",
    "ResultCache",
    "PipelineController",
    "PipelineStatus",
    "DetectionResult",
    "ParameterOverrides",
    "ParametersResponse",
    "SelectedSurfacesChanged",
    "SurfaceDetectionResponse",
    "ChangeNotifier",
    "PeriodicPublisher",
    "Topic",
    "Subscription",
]
