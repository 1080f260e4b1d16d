import copy
from typing import Any, Callable, Dict, List, Mapping, Optional

from formx.core.logging import get_logger
from formx.lib.computed import ComputedPropertyEvaluator

logger = get_logger(__name__)

# listener(key, value, previous); key is None for whole-store replacements
ChangeListener = Callable[[Optional[str], Any, Any], None]


class FormDataStore:
    """
    Field values of one form session, keyed by dataKey.

    Last write wins. Writing a value equal to the current one is a no-op and
    does not notify listeners.
    """

    # members reachable from user scripts (`store.getData('x')`)
    __script_members__ = ("get", "set", "getData", "setData", "getAllData", "getAll", "reset", "clear")

    def __init__(self, initial_data: Optional[Mapping[str, Any]] = None, evaluator: Optional[ComputedPropertyEvaluator] = None):
        self._data: Dict[str, Any] = {}
        self._initial: Dict[str, Any] = {}
        self._listeners: List[ChangeListener] = []
        self.evaluator = evaluator or ComputedPropertyEvaluator()
        if initial_data:
            self.set_initial_data(initial_data)

    # ---------------- Reads ----------------

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def get_all(self) -> Dict[str, Any]:
        """Snapshot copy; mutating it does not touch the store."""
        return copy.deepcopy(self._data)

    @property
    def data(self) -> Dict[str, Any]:
        """Live view used by evaluators within a single pass."""
        return self._data

    def __contains__(self, key: str) -> bool:
        return key in self._data

    # ---------------- Writes ----------------

    def set(self, key: str, value: Any) -> bool:
        """Returns False when the write was a no-op."""
        previous = self._data.get(key)
        if key in self._data and previous == value and type(previous) is type(value):
            return False
        self._data[key] = value
        logger.debug(f"[STORE] {key} = {value!r}")
        self._notify(key, value, previous)
        return True

    def set_initial_data(self, data: Mapping[str, Any]):
        self._initial = copy.deepcopy(dict(data))
        self._data = copy.deepcopy(self._initial)
        self._notify(None, self._data, None)

    def reset(self):
        """Back to the initial data."""
        self._data = copy.deepcopy(self._initial)
        self._notify(None, self._data, None)

    def clear(self):
        self._data = {}
        self._initial = {}
        self._notify(None, self._data, None)

    def evaluate_property(self, prop: Any, parent_data: Optional[Mapping[str, Any]] = None) -> Any:
        return self.evaluator.evaluate(prop, self._data, parent_data, self._data)

    # ---------------- Listeners ----------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key, value, previous):
        for listener in list(self._listeners):
            try:
                listener(key, value, previous)
            except Exception:
                logger.exception(f"[STORE] Change listener failed for '{key}'")

    # ---------------- Script aliases ----------------

    def getData(self, key):
        return self.get(key)

    def setData(self, key, value):
        self.set(key, value)

    def getAllData(self):
        return self.get_all()

    def getAll(self):
        return self.get_all()
