import logging
from datetime import datetime
from typing import Any

import httpx

from trial_funnel.config import FunnelConfig
from trial_funnel.errors import NotFoundError, PersistenceError
from trial_funnel.models import RequestChange, RequestStatus, TrialRequest, format_timestamp
from trial_funnel.persistence import RequestRepository

logger = logging.getLogger(__name__)

TRIAL_REQUESTS_PATH = "/api/trial-requests"


class HttpRequestRepository(RequestRepository):
    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        api_token: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)

    @classmethod
    def from_config(cls, config: FunnelConfig) -> "HttpRequestRepository":
        return cls(base_url=config.api_url, api_token=config.api_token, timeout=config.timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpRequestRepository":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _send(self, method: str, path: str, request_id: int | None = None, payload: dict | None = None) -> Any:
        try:
            response = await self._client.request(method, path, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 404 and request_id is not None:
                raise NotFoundError(request_id) from e
            logger.warning("%s %s failed with HTTP %s", method, path, status_code)
            raise PersistenceError(
                f"HTTP {status_code}: {e.response.text[:200]}",
                status_code=status_code,
                request_id=request_id,
            ) from e
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise PersistenceError(str(e) or type(e).__name__, request_id=request_id) from e
        except ValueError as e:
            raise PersistenceError(f"invalid JSON from {path}", request_id=request_id) from e

    def _to_request(self, data: Any, request_id: int | None = None) -> TrialRequest:
        try:
            return TrialRequest.from_dict(data)
        except ValueError as e:
            raise PersistenceError(f"malformed trial request payload: {e}", request_id=request_id) from e

    async def get_request_by_id(self, request_id: int) -> TrialRequest:
        data = await self._send("GET", f"{TRIAL_REQUESTS_PATH}/{request_id}", request_id)
        return self._to_request(data, request_id)

    async def list_requests(self) -> list[TrialRequest]:
        data = await self._send("GET", TRIAL_REQUESTS_PATH)
        if not isinstance(data, list):
            raise PersistenceError("trial request list must be a JSON array")
        return [self._to_request(item) for item in data]

    async def update_request_status(
        self,
        request_id: int,
        status: RequestStatus,
        scheduled_date: datetime | None = None,
        notes: str | None = None,
    ) -> TrialRequest:
        payload: dict[str, Any] = {"status": status.value}
        if scheduled_date is not None:
            payload["scheduledDate"] = format_timestamp(scheduled_date)
        if notes is not None:
            payload["notes"] = notes
        data = await self._send("PATCH", f"{TRIAL_REQUESTS_PATH}/{request_id}/status", request_id, payload)
        return self._to_request(data, request_id)

    async def update_request_fields(self, request_id: int, fields: dict[str, Any]) -> TrialRequest:
        payload = RequestChange(request_id, fields=dict(fields)).camel_fields()
        data = await self._send("PATCH", f"{TRIAL_REQUESTS_PATH}/{request_id}", request_id, payload)
        return self._to_request(data, request_id)
