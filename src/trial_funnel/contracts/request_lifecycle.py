from dataclasses import dataclass, field
from datetime import datetime

from trial_funnel.contracts.refusal_reasons import build_refusal_notes
from trial_funnel.errors import ValidationError
from trial_funnel.models import RequestChange, RequestStatus, TrialRequest

__all__ = [
    "AuxiliaryData",
    "RequestStatus",
    "build_transition_change",
    "can_transition",
    "ensure_archivable",
    "is_same_column",
    "requires_auxiliary",
    "validate_transition",
]


_ALLOWED_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.NEW: {RequestStatus.TRIAL_ASSIGNED, RequestStatus.REFUSED, RequestStatus.SIGNED},
    RequestStatus.TRIAL_ASSIGNED: {RequestStatus.TRIAL_ASSIGNED, RequestStatus.REFUSED, RequestStatus.SIGNED},
    RequestStatus.REFUSED: set(),
    RequestStatus.SIGNED: set(),
}

_AUXILIARY_TARGETS = {RequestStatus.TRIAL_ASSIGNED, RequestStatus.REFUSED}

ARCHIVABLE_STATUSES = frozenset({RequestStatus.REFUSED, RequestStatus.SIGNED})


@dataclass(frozen=True)
class AuxiliaryData:
    scheduled_date: datetime | None = None
    reasons: tuple[str, ...] = field(default_factory=tuple)
    comment: str = ""


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in _ALLOWED_TRANSITIONS.get(current, set())


def validate_transition(current: RequestStatus, target: RequestStatus) -> None:
    if not can_transition(current, target):
        raise ValidationError(
            f"transition {current.value} -> {target.value} is not allowed",
            details={"status": current.value, "target_status": target.value},
        )


def requires_auxiliary(target: RequestStatus) -> bool:
    return target in _AUXILIARY_TARGETS


def is_same_column(source_column: str, target_column: str) -> bool:
    return source_column == target_column


def build_transition_change(
    request: TrialRequest,
    target: RequestStatus,
    auxiliary: AuxiliaryData | None = None,
    capture_required: bool = True,
) -> RequestChange:
    validate_transition(request.status, target)
    aux = auxiliary or AuxiliaryData()

    if target == RequestStatus.TRIAL_ASSIGNED:
        scheduled_date = aux.scheduled_date
        if scheduled_date is None and not capture_required:
            scheduled_date = request.scheduled_date
        if scheduled_date is None:
            raise ValidationError("scheduled_date is required to assign a trial", details={"request_id": request.id})
        return RequestChange(request.id, status=target, fields={"scheduled_date": scheduled_date})

    if target == RequestStatus.REFUSED:
        has_reason = bool(aux.reasons) or bool(aux.comment.strip())
        if not has_reason:
            if capture_required:
                raise ValidationError("a refusal reason or comment is required", details={"request_id": request.id})
            return RequestChange(request.id, status=target)
        notes = build_refusal_notes(aux.reasons, aux.comment, request.notes)
        return RequestChange(request.id, status=target, fields={"notes": notes})

    return RequestChange(request.id, status=target)


def ensure_archivable(request: TrialRequest) -> None:
    if request.status not in ARCHIVABLE_STATUSES:
        raise ValidationError(
            f"only refused or signed requests can be archived, request {request.id} is {request.status.value}",
            details={"request_id": request.id, "status": request.status.value},
        )
