from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from trial_funnel.contracts.archive_markers import is_archived
from trial_funnel.models import RequestStatus, TrialRequest, as_utc


@dataclass(frozen=True)
class ArchiveCandidates:
    refusals: list[TrialRequest]
    successful: list[TrialRequest]


def age_in_days(request: TrialRequest, now: datetime) -> int:
    reference = request.updated_at or request.created_at or now
    return (as_utc(now) - as_utc(reference)).days


def filter_old(requests: Iterable[TrialRequest], threshold_days: int, now: datetime | None = None) -> list[TrialRequest]:
    if threshold_days < 0:
        raise ValueError("threshold_days must be >= 0")
    moment = now or datetime.now(timezone.utc)
    return [
        request
        for request in requests
        if not is_archived(request) and age_in_days(request, moment) > threshold_days
    ]


def filter_old_refusals(
    requests: Iterable[TrialRequest], threshold_days: int = 5, now: datetime | None = None
) -> list[TrialRequest]:
    refused = [request for request in requests if request.status == RequestStatus.REFUSED]
    return filter_old(refused, threshold_days, now)


def filter_old_successful(
    requests: Iterable[TrialRequest], threshold_days: int = 3, now: datetime | None = None
) -> list[TrialRequest]:
    signed = [request for request in requests if request.status == RequestStatus.SIGNED]
    return filter_old(signed, threshold_days, now)


def select_archive_candidates(
    requests: Iterable[TrialRequest],
    refusal_days: int = 5,
    success_days: int = 3,
    now: datetime | None = None,
) -> ArchiveCandidates:
    moment = now or datetime.now(timezone.utc)
    items = list(requests)
    return ArchiveCandidates(
        refusals=filter_old_refusals(items, refusal_days, moment),
        successful=filter_old_successful(items, success_days, moment),
    )
