import logging

from trial_funnel.models import TrialRequest
from trial_funnel.notify import Notifier

logger = logging.getLogger(__name__)


class LogNotifier(Notifier):
    """Writes notifications to the log instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[int] = []

    async def trial_assigned(self, request: TrialRequest) -> None:
        when = request.scheduled_date.strftime("%d.%m.%Y %H:%M") if request.scheduled_date else "unscheduled"
        logger.info("trial assigned for %s (request %s) on %s", request.child_name or "child", request.id, when)
        self.sent.append(request.id)

    def is_available(self) -> bool:
        return True
