"""
Action identifiers and the dispatch table of the detection protocol.

Each detection action maps to the parameter groups it touches, the stage
steps it runs and the shape of its reply. `use_default_parameters` resets
exactly the touched groups and overrides apply to exactly the touched
groups, so e.g. FIND_ONLY never resets the scan parameters.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Tuple

from surface_detection.errors import UnsupportedActionError
from surface_detection.params.models import ParameterGroup


class DetectionAction(IntEnum):
    GET_CURRENT_PARAMETERS = 1
    GET_DEFAULT_PARAMETERS = 2
    PUBLISH_SCAN_PATH = 3
    SCAN_AND_FIND_ONLY = 4
    SCAN_FIND_AND_RETURN = 5
    FIND_ONLY = 6
    FIND_AND_RETURN = 7
    RETURN_LATEST_RESULTS = 8


class SelectionAction(IntEnum):
    SELECT = 1
    DESELECT = 2
    SELECT_ALL = 3
    DESELECT_ALL = 4
    HIDE_ALL = 5
    SHOW_ALL = 6


class ParameterQuery(IntEnum):
    GET_CURRENT_PARAMETERS = 1
    GET_DEFAULT_PARAMETERS = 2


class Step(Enum):
    PREVIEW = "preview"
    SCAN = "scan"
    FIND = "find"


class Reply(Enum):
    CURRENT_PARAMETERS = "current_parameters"
    DEFAULT_PARAMETERS = "default_parameters"
    LATEST_RESULTS = "latest_results"
    FOUND_FLAG = "found_flag"
    SURFACES = "surfaces"
    NONE = "none"


@dataclass(frozen=True)
class ActionSpec:
    groups: Tuple[ParameterGroup, ...] = ()
    steps: Tuple[Step, ...] = ()
    reply: Reply = Reply.NONE


SCAN = ParameterGroup.SCAN
DETECTION = ParameterGroup.DETECTION

ACTION_TABLE = {
    DetectionAction.GET_CURRENT_PARAMETERS: ActionSpec(reply=Reply.CURRENT_PARAMETERS),
    DetectionAction.GET_DEFAULT_PARAMETERS: ActionSpec(reply=Reply.DEFAULT_PARAMETERS),
    DetectionAction.PUBLISH_SCAN_PATH: ActionSpec(groups=(SCAN,), steps=(Step.PREVIEW,)),
    DetectionAction.SCAN_AND_FIND_ONLY: ActionSpec(
        groups=(SCAN, DETECTION), steps=(Step.SCAN, Step.FIND), reply=Reply.FOUND_FLAG),
    DetectionAction.SCAN_FIND_AND_RETURN: ActionSpec(
        groups=(SCAN, DETECTION), steps=(Step.SCAN, Step.FIND), reply=Reply.SURFACES),
    DetectionAction.FIND_ONLY: ActionSpec(
        groups=(DETECTION,), steps=(Step.FIND,), reply=Reply.FOUND_FLAG),
    DetectionAction.FIND_AND_RETURN: ActionSpec(
        groups=(DETECTION,), steps=(Step.FIND,), reply=Reply.SURFACES),
    DetectionAction.RETURN_LATEST_RESULTS: ActionSpec(reply=Reply.LATEST_RESULTS),
}


def parse_action(enum_cls, value):
    """Coerce a wire value (int, float or name) into an action enum member."""
    if isinstance(value, enum_cls):
        return value
    try:
        if isinstance(value, str):
            return enum_cls[value.upper()]
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(value)
        return enum_cls(int(value))
    except (KeyError, ValueError, TypeError):
        raise UnsupportedActionError(f"Unsupported {enum_cls.__name__}: {value!r}")
