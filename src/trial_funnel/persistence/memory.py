import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterable

from trial_funnel.errors import NotFoundError
from trial_funnel.models import RequestChange, RequestStatus, TrialRequest
from trial_funnel.persistence import RequestRepository

logger = logging.getLogger(__name__)


class InMemoryRequestRepository(RequestRepository):
    """Dictionary-backed repository; stamps ``updated_at`` like the server does."""

    def __init__(self, requests: Iterable[TrialRequest] = ()) -> None:
        self._requests: dict[int, TrialRequest] = {request.id: request for request in requests}
        self.calls: list[tuple[str, int | None]] = []

    def _lookup(self, request_id: int) -> TrialRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise NotFoundError(request_id)
        return request

    def _store(self, request: TrialRequest) -> TrialRequest:
        stamped = replace(request, updated_at=datetime.now(timezone.utc))
        self._requests[stamped.id] = stamped
        return stamped

    async def get_request_by_id(self, request_id: int) -> TrialRequest:
        self.calls.append(("get", request_id))
        return self._lookup(request_id)

    async def list_requests(self) -> list[TrialRequest]:
        self.calls.append(("list", None))
        return [self._requests[request_id] for request_id in sorted(self._requests)]

    async def update_request_status(
        self,
        request_id: int,
        status: RequestStatus,
        scheduled_date: datetime | None = None,
        notes: str | None = None,
    ) -> TrialRequest:
        self.calls.append(("update_status", request_id))
        current = self._lookup(request_id)
        fields: dict[str, Any] = {}
        if scheduled_date is not None:
            fields["scheduled_date"] = scheduled_date
        if notes is not None:
            fields["notes"] = notes
        updated = RequestChange(request_id, status=status, fields=fields).apply_to(current)
        logger.debug("stored status %s for request %s", status.value, request_id)
        return self._store(updated)

    async def update_request_fields(self, request_id: int, fields: dict[str, Any]) -> TrialRequest:
        self.calls.append(("update_fields", request_id))
        current = self._lookup(request_id)
        updated = RequestChange(request_id, fields=dict(fields)).apply_to(current)
        return self._store(updated)
