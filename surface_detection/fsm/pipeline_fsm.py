import yaml
from pathlib import Path
from transitions.extensions import LockedMachine


class PipelineFSM:
    """
    Finite State Machine tracking which stage the pipeline is running.
    Loads its structure from states.yaml for easy modification.
    """

    def __init__(self, config_path=None, callbacks=None):
        """
        :param config_path: Optional path to the YAML FSM definition.
        :param callbacks: Optional dict of callbacks for state entry/exit actions.
                          Example: {"on_enter_scanning": some_function}
        """
        self.config_path = config_path or Path(__file__).parent / "states.yaml"
        self.callbacks = callbacks or {}

        with open(self.config_path, "r") as f:
            fsm_config = yaml.safe_load(f)

        states = fsm_config.get("states", [])
        transitions = fsm_config.get("transitions", [])
        initial = fsm_config.get("initial", "idle")

        self.machine = LockedMachine(
            model=self,
            states=states,
            transitions=transitions,
            initial=initial,
            auto_transitions=False,
        )

        for name, func in self.callbacks.items():
            self._register_callback(name, func)

    def _register_callback(self, name, func):
        if not callable(func):
            raise ValueError(f"Callback '{name}' must be callable, got {type(func)}")

        for kind in ("enter", "exit"):
            prefix = f"on_{kind}_"
            if name.startswith(prefix):
                state = name[len(prefix):]
                try:
                    self.machine.get_state(state).add_callback(kind, func)
                except ValueError:
                    raise ValueError(f"Callback '{name}' refers to unknown state '{state}'")
                return

        raise ValueError(f"Callback name '{name}' should look like 'on_enter_<state>' or 'on_exit_<state>'")

    def is_busy(self):
        return self.state != "idle"
