import logging

import httpx

from trial_funnel.models import TrialRequest
from trial_funnel.notify import Notifier

logger = logging.getLogger(__name__)


class WebhookNotifier(Notifier):
    """Posts a JSON event to a notification service (e-mail/SMS gateway)."""

    def __init__(self, url: str, timeout: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self._timeout = timeout
        self._client = client

    async def trial_assigned(self, request: TrialRequest) -> None:
        payload = {"event": "trial_assigned", "request": request.to_dict()}
        if self._client is not None:
            response = await self._client.post(self.url, json=payload, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self.url, json=payload)
        response.raise_for_status()
        logger.debug("trial-assigned event for request %s delivered", request.id)

    def is_available(self) -> bool:
        return bool(self.url)
