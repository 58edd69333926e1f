import itertools
import threading
from collections import OrderedDict
from typing import List, Sequence

from loguru import logger

from surface_detection.stages.base import Mesh, SelectionListener, SelectionStage, SurfaceEntry


class InteractiveSurfaceServer(SelectionStage):
    """
    In-memory surface set with selection and visibility flags.

    Each public mutator is one batch: it runs under the server lock and
    calls the selection listeners once, before releasing the lock, so a
    listener reading the selection sees exactly the post-batch state.
    Rendering of the interactive markers is left to the viewer.
    """

    ID_PREFIX = "surface_"

    def __init__(self):
        self._lock = threading.RLock()
        self._surfaces: "OrderedDict[str, SurfaceEntry]" = OrderedDict()
        self._listeners: List[SelectionListener] = []
        self._ids = itertools.count()

    def add_selection_listener(self, listener: SelectionListener) -> None:
        if not callable(listener):
            raise ValueError(f"Selection listener must be callable, got {type(listener)}")
        with self._lock:
            self._listeners.append(listener)

    def _notify(self):
        for listener in self._listeners:
            try:
                listener()
            except Exception as e:
                logger.error(f"Selection listener failed: {e}")

    # -------------------- Batches --------------------

    def replace_surfaces(self, meshes: Sequence[Mesh]) -> List[str]:
        with self._lock:
            self._surfaces.clear()
            ids = []
            for mesh in meshes:
                surface_id = f"{self.ID_PREFIX}{next(self._ids)}"
                self._surfaces[surface_id] = SurfaceEntry(surface_id=surface_id, mesh=mesh)
                ids.append(surface_id)
            logger.info(f"Surface set replaced with {len(ids)} surfaces")
            self._notify()
        return ids

    def set_selection_flags(self, surface_ids: Sequence[str], selected: bool) -> None:
        with self._lock:
            for surface_id in surface_ids:
                entry = self._surfaces.get(surface_id)
                if entry is None:
                    logger.warning(f"Unknown surface id '{surface_id}', skipping")
                    continue
                entry.selected = selected
            self._notify()

    def select_all(self, selected: bool) -> None:
        with self._lock:
            for entry in self._surfaces.values():
                entry.selected = selected
            self._notify()

    def show_all(self, visible: bool) -> None:
        with self._lock:
            for entry in self._surfaces.values():
                entry.visible = visible
            self._notify()

    # -------------------- Queries --------------------

    def get_selected_list(self) -> List[str]:
        with self._lock:
            return [sid for sid, entry in self._surfaces.items() if entry.selected]

    def get_surfaces(self) -> List[SurfaceEntry]:
        with self._lock:
            return [
                SurfaceEntry(e.surface_id, e.mesh, e.selected, e.visible)
                for e in self._surfaces.values()
            ]
