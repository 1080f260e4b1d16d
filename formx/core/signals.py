import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from formx.core.logging import get_logger

logger = get_logger(__name__)

# global registry of buses
_buses: Dict[str, "SignalBus"] = {}


@dataclass
class ModalSignal:
    action: str               # "openModal" | "closeModal"
    modal_id: Optional[str]
    modal_type: Optional[str] = None
    args: Dict[str, Any] = field(default_factory=dict)

    @property
    def event_name(self) -> str:
        return f"formx:{self.action}"


class SignalBus:
    """
    Named publish/subscribe channel between the engine and rendering-side
    collaborators (e.g. the modal host). Subscribers may be plain or async
    callables; one failing subscriber does not stop delivery to the rest.
    """

    def __init__(self, name: str, keep_last: bool = True):
        self.name = name
        self.keep_last = keep_last
        self.last_message: Optional[Any] = None
        self.subscribers: List[Callable[[Any], Any]] = []

    async def publish(self, msg: Any):
        """Deliver message to all subscribers and optionally store last message."""
        if self.keep_last:
            self.last_message = msg
        await self._broadcast(msg)

    async def _broadcast(self, msg: Any):
        for fn in list(self.subscribers):
            try:
                result = fn(msg)
                if inspect.isawaitable(result):
                    await result
            except Exception as ex:
                logger.warning(f"[SIGNAL] Subscriber failed on bus '{self.name}': {ex!r}")

    def subscribe(self, fn: Callable[[Any], Any]) -> Callable[[], None]:
        """Register a subscriber; returns a callable that unsubscribes it."""
        self.subscribers.append(fn)

        def unsubscribe():
            if fn in self.subscribers:
                self.subscribers.remove(fn)

        return unsubscribe


def get_bus(name: str, keep_last: bool = True) -> SignalBus:
    """Get or create a signal bus by name."""
    if name not in _buses:
        _buses[name] = SignalBus(name, keep_last=keep_last)
    return _buses[name]


def reset_buses():
    _buses.clear()
