import logging
from abc import ABC, abstractmethod

from trial_funnel.models import TrialRequest

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    async def trial_assigned(self, request: TrialRequest) -> None:
        """Tell the family that a trial lesson was scheduled."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the notifier is configured."""
        pass


async def notify_trial_assigned(notifier: Notifier | None, request: TrialRequest) -> bool:
    """Send the trial-assigned notification; a failure never fails the transition."""
    if notifier is None or not notifier.is_available():
        return False
    try:
        await notifier.trial_assigned(request)
    except Exception:
        logger.exception("trial-assigned notification for request %s failed", request.id)
        return False
    return True
