import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from trial_funnel.models import RequestChange, TrialRequest

logger = logging.getLogger(__name__)

Listener = Callable[[list[TrialRequest]], None]


@dataclass(frozen=True)
class CacheSnapshot:
    snapshot_id: str
    requests: tuple[TrialRequest, ...]


class RequestCache:
    """Client-held copy of the request list.

    Records are frozen, so a snapshot is a tuple of the very objects that were
    cached; restoring it gives object-level equality with the pre-write view.
    """

    def __init__(self, requests: Iterable[TrialRequest] = ()) -> None:
        self._requests: list[TrialRequest] = list(requests)
        self._listeners: list[Listener] = []
        self._snapshot_counter = 0
        self.loaded = bool(self._requests)

    def read(self) -> list[TrialRequest]:
        return list(self._requests)

    def get(self, request_id: int) -> TrialRequest | None:
        for request in self._requests:
            if request.id == request_id:
                return request
        return None

    def snapshot(self) -> CacheSnapshot:
        self._snapshot_counter += 1
        return CacheSnapshot(snapshot_id=f"snap-{self._snapshot_counter}", requests=tuple(self._requests))

    def restore(self, snapshot: CacheSnapshot) -> None:
        self._requests = list(snapshot.requests)
        logger.debug("cache restored from %s", snapshot.snapshot_id)
        self._notify()

    def replace(self, requests: Iterable[TrialRequest]) -> None:
        self._requests = list(requests)
        self.loaded = True
        self._notify()

    def apply(self, change: RequestChange) -> TrialRequest | None:
        for index, request in enumerate(self._requests):
            if request.id == change.request_id:
                updated = change.apply_to(request)
                self._requests[index] = updated
                self._notify()
                return updated
        logger.debug("change for request %s not applied: not cached", change.request_id)
        return None

    def put(self, request: TrialRequest) -> None:
        for index, current in enumerate(self._requests):
            if current.id == request.id:
                self._requests[index] = request
                break
        else:
            self._requests.append(request)
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        view = self.read()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("cache listener failed")
