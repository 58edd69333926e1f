import logging

from surface_detection.pipeline.messages import SelectedSurfacesChanged
from surface_detection.pipeline.topics import Topic
from surface_detection.stages.base import SelectionStage


class ChangeNotifier:
    """
    Publishes the full selected-surface list after every selection batch.

    One notification per listener call; batching is the selection stage's
    job, so nothing is filtered or merged here.
    """

    def __init__(self, selection: SelectionStage, topic: Topic):
        self.log = logging.getLogger("ChangeNotifier")
        self.selection = selection
        self.topic = topic
        self._registered = False

    def register(self):
        if self._registered:
            return
        self.selection.add_selection_listener(self.publish_selected_surfaces_changed)
        self._registered = True

    def publish_selected_surfaces_changed(self):
        msg = SelectedSurfacesChanged(selected_surfaces=tuple(self.selection.get_selected_list()))
        self.topic.publish(msg)
        self.log.debug(f"Selected surfaces changed: {list(msg.selected_surfaces)}")
