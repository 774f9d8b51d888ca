import logging
from typing import Any, Callable, Dict, List

log = logging.getLogger(__name__)


class EventBus:
    """Simple pub/sub event bus for world notifications (damage, death, respawn, peers).

    A failing subscriber is logged and skipped so that a broken display hook
    cannot abort a simulation tick.
    """
    def __init__(self) -> None:
        self._subs: Dict[str, List[Callable[..., None]]] = {}

    def subscribe(self, event: str, cb: Callable[..., None]) -> None:
        self._subs.setdefault(event, []).append(cb)

    def unsubscribe(self, event: str, cb: Callable[..., None]) -> None:
        subs = self._subs.get(event, [])
        if cb in subs:
            subs.remove(cb)

    def emit(self, event: str, *args: Any, **kwargs: Any) -> None:
        for cb in list(self._subs.get(event, [])):
            try:
                cb(*args, **kwargs)
            except Exception:
                log.exception("subscriber for %r failed", event)
