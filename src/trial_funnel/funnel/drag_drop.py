"""
Drag-and-drop transitions between funnel columns.

One interaction at a time moves through IDLE -> PENDING_AUXILIARY ->
COMMITTED | CANCELLED -> IDLE. Drops onto columns that need no auxiliary
data go straight from IDLE to COMMITTED with a single write. While a drop
is pending, the target status is shown optimistically but nothing has been
written; cancelling issues a compensating write back to the source status.
The staged change stays open in the coordinator until the drop settles, so
no background read moves the card back in the meantime.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from trial_funnel.contracts.request_lifecycle import (
    AuxiliaryData,
    build_transition_change,
    is_same_column,
    requires_auxiliary,
    validate_transition,
)
from trial_funnel.errors import ValidationError
from trial_funnel.funnel.coordinator import MutationOutcome, OptimisticMutationCoordinator, StagedChange
from trial_funnel.models import RequestChange, RequestStatus, TrialRequest
from trial_funnel.notify import Notifier, notify_trial_assigned

logger = logging.getLogger(__name__)


class DropState(str, Enum):
    IDLE = "idle"
    PENDING_AUXILIARY = "pending_auxiliary"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PendingDrop:
    original: TrialRequest
    source_column: str
    target_status: RequestStatus
    staged: StagedChange


@dataclass(frozen=True)
class DropResult:
    request_id: int
    state: DropState
    outcome: MutationOutcome | None = None


def column_status(column_id: str) -> RequestStatus:
    try:
        return RequestStatus(column_id.upper())
    except ValueError:
        raise ValidationError(f"unknown funnel column: {column_id!r}")


class DragDropController:
    def __init__(self, coordinator: OptimisticMutationCoordinator, notifier: Notifier | None = None) -> None:
        self._coordinator = coordinator
        self._notifier = notifier
        self._pending: PendingDrop | None = None
        self._state = DropState.IDLE
        self.transitions: list[DropState] = [DropState.IDLE]

    @property
    def state(self) -> DropState:
        return self._state

    @property
    def pending(self) -> PendingDrop | None:
        return self._pending

    def _enter(self, state: DropState) -> None:
        self._state = state
        self.transitions.append(state)

    def _require_pending(self) -> PendingDrop:
        if self._pending is None:
            raise ValidationError("no drop is waiting for auxiliary data")
        return self._pending

    async def drop(self, request_id: int, source_column: str, target_column: str) -> DropResult:
        if self._pending is not None:
            raise ValidationError("finish or cancel the pending drop first")
        if is_same_column(source_column, target_column):
            return DropResult(request_id=request_id, state=DropState.IDLE)

        target = column_status(target_column)
        request = self._coordinator.cache.get(request_id)
        if request is None:
            raise ValidationError(f"request {request_id} is not in the funnel")
        validate_transition(request.status, target)

        self.transitions = [DropState.IDLE]
        if requires_auxiliary(target):
            staged = self._coordinator.stage(RequestChange(request_id, status=target))
            self._pending = PendingDrop(
                original=request,
                source_column=source_column,
                target_status=target,
                staged=staged,
            )
            self._enter(DropState.PENDING_AUXILIARY)
            logger.debug(
                "request %s waits for auxiliary data before %s",
                request_id,
                target.value,
                extra={"request_id": request_id, "target_status": target.value},
            )
            return DropResult(request_id=request_id, state=DropState.PENDING_AUXILIARY)

        change = build_transition_change(request, target, capture_required=False)
        outcome = await self._coordinator.mutate(change)
        if not outcome.succeeded:
            return DropResult(request_id=request_id, state=DropState.IDLE, outcome=outcome)
        self._enter(DropState.COMMITTED)
        self._enter(DropState.IDLE)
        return DropResult(request_id=request_id, state=DropState.COMMITTED, outcome=outcome)

    async def submit(self, auxiliary: AuxiliaryData) -> MutationOutcome:
        pending = self._require_pending()
        # a validation error leaves the dialog open and writes nothing
        change = build_transition_change(pending.original, pending.target_status, auxiliary, capture_required=True)

        self._pending = None
        outcome = await self._coordinator.commit(pending.staged, change)
        if not outcome.succeeded:
            self._enter(DropState.IDLE)
            return outcome

        self._enter(DropState.COMMITTED)
        if pending.target_status == RequestStatus.TRIAL_ASSIGNED:
            assigned = outcome.request or change.apply_to(pending.original)
            await notify_trial_assigned(self._notifier, assigned)
        self._enter(DropState.IDLE)
        return outcome

    async def cancel(self) -> MutationOutcome:
        pending = self._require_pending()
        self._pending = None
        self._enter(DropState.CANCELLED)

        original = pending.original
        fields = {"scheduled_date": original.scheduled_date} if original.scheduled_date is not None else {}
        outcome = await self._coordinator.mutate(RequestChange(original.id, status=original.status, fields=fields))
        if not outcome.succeeded:
            # the server never saw the target status; show the record as it was
            self._coordinator.cache.put(original)
            logger.warning(
                "compensating write for request %s failed, restored locally",
                original.id,
                extra={"request_id": original.id, "status": original.status.value},
            )
        self._coordinator.release(pending.staged)
        self._enter(DropState.IDLE)
        return outcome
