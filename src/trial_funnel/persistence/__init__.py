from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from trial_funnel.models import RequestStatus, TrialRequest


class RequestRepository(ABC):
    @abstractmethod
    async def get_request_by_id(self, request_id: int) -> TrialRequest:
        """Return the stored request or raise NotFoundError."""
        pass

    @abstractmethod
    async def list_requests(self) -> list[TrialRequest]:
        """Return every trial request."""
        pass

    @abstractmethod
    async def update_request_status(
        self,
        request_id: int,
        status: RequestStatus,
        scheduled_date: datetime | None = None,
        notes: str | None = None,
    ) -> TrialRequest:
        """Change the status (and optionally the date and notes). Returns the stored record."""
        pass

    @abstractmethod
    async def update_request_fields(self, request_id: int, fields: dict[str, Any]) -> TrialRequest:
        """Patch plain attributes keyed by attribute name. Returns the stored record."""
        pass
