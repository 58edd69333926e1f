import logging
import threading
from typing import Dict

from surface_detection.params.models import GROUP_TYPES, ParameterGroup, ParameterSet


class ParameterStore:
    """
    Holds the current and default value of each parameter group.

    Defaults are snapshotted once at construction and never change. Current
    values are swapped whole under a per-group lock, so a reader always gets
    a complete value.
    """

    def __init__(self, initial: Dict[ParameterGroup, ParameterSet]):
        self.log = logging.getLogger("ParameterStore")

        missing = [g.value for g in ParameterGroup if g not in initial]
        if missing:
            raise ValueError(f"Missing parameter groups: {missing}")

        for group, value in initial.items():
            self._check_type(group, value)

        # Frozen dataclasses: sharing the instance is a snapshot.
        self._defaults = dict(initial)
        self._current = dict(initial)
        self._locks = {group: threading.Lock() for group in ParameterGroup}

    @staticmethod
    def _check_type(group: ParameterGroup, value):
        expected = GROUP_TYPES[group]
        if not isinstance(value, expected):
            raise TypeError(
                f"{group.value} expects {expected.__name__}, got {type(value).__name__}"
            )

    def get_current(self, group: ParameterGroup) -> ParameterSet:
        with self._locks[group]:
            return self._current[group]

    def get_default(self, group: ParameterGroup) -> ParameterSet:
        return self._defaults[group]

    def set_current(self, group: ParameterGroup, value: ParameterSet):
        self._check_type(group, value)
        with self._locks[group]:
            self._current[group] = value
        self.log.debug(f"{group.value} set to {value}")

    def reset_current_to_default(self, group: ParameterGroup):
        with self._locks[group]:
            self._current[group] = self._defaults[group]
        self.log.debug(f"{group.value} reset to default")
