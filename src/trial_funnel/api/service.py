import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

from trial_funnel.config import FunnelConfig, get_funnel_config
from trial_funnel.contracts.archive_markers import (
    DisplayTexts,
    display_texts,
    is_archived,
    is_restored,
    is_successful,
)
from trial_funnel.contracts.candidate_selection import ArchiveCandidates, select_archive_candidates
from trial_funnel.contracts.refusal_reasons import RefusalStat, refusal_statistics
from trial_funnel.contracts.request_lifecycle import (
    ARCHIVABLE_STATUSES,
    AuxiliaryData,
    build_transition_change,
    ensure_archivable,
)
from trial_funnel.errors import PersistenceError, ValidationError
from trial_funnel.funnel.archive_batch import (
    ArchiveBatchProcessor,
    archived_notes,
    restored_notes,
    successful_archived_notes,
)
from trial_funnel.funnel.cache import Listener, RequestCache
from trial_funnel.funnel.coordinator import MutationOutcome, OptimisticMutationCoordinator
from trial_funnel.funnel.drag_drop import DragDropController, DropResult
from trial_funnel.logging_config import configure_logging
from trial_funnel.models import RequestChange, RequestStatus, TrialRequest
from trial_funnel.notify import Notifier, notify_trial_assigned
from trial_funnel.notify.log import LogNotifier
from trial_funnel.notify.webhook import WebhookNotifier
from trial_funnel.persistence import RequestRepository
from trial_funnel.persistence.http import HttpRequestRepository

logger = logging.getLogger(__name__)

_STATUS_LABELS = {
    RequestStatus.NEW: "New",
    RequestStatus.TRIAL_ASSIGNED: "Trial assigned",
    RequestStatus.REFUSED: "Refused",
    RequestStatus.SIGNED: "Signed",
}


@dataclass(frozen=True)
class Notice:
    level: str
    title: str
    message: str


@dataclass(frozen=True)
class RequestAffordances:
    is_archived: bool
    is_restored: bool
    is_successful: bool
    can_archive: bool
    can_restore: bool


class FunnelService:
    """What the funnel screens talk to.

    Validation errors propagate to the caller so the open dialog can show
    them. Persistence failures never propagate: the cache is rolled back and
    exactly one notice is emitted per operation.
    """

    def __init__(
        self,
        repository: RequestRepository,
        notifier: Notifier | None = None,
        config: FunnelConfig | None = None,
        on_notice: Callable[[Notice], None] | None = None,
        cache: RequestCache | None = None,
    ) -> None:
        self._config = config or get_funnel_config()
        self._repository = repository
        self._notifier = notifier
        self._on_notice = on_notice
        self.coordinator = OptimisticMutationCoordinator(
            repository,
            cache=cache,
            background_refresh=self._config.background_refresh,
        )
        self.archive = ArchiveBatchProcessor(repository)
        self.drag_drop = DragDropController(self.coordinator, notifier)

    @classmethod
    def from_config(cls, config: FunnelConfig | None = None, on_notice: Callable[[Notice], None] | None = None) -> "FunnelService":
        config = config or get_funnel_config()
        configure_logging(config.log_level, json_format=config.log_json)
        notifier: Notifier
        if config.notify_url:
            notifier = WebhookNotifier(config.notify_url, timeout=config.timeout)
        else:
            notifier = LogNotifier()
        return cls(HttpRequestRepository.from_config(config), notifier=notifier, config=config, on_notice=on_notice)

    def _notice(self, level: str, title: str, message: str) -> None:
        notice = Notice(level=level, title=title, message=message)
        log = logger.error if level == "error" else logger.info
        log("%s: %s", title, message)
        if self._on_notice is not None:
            self._on_notice(notice)

    def health(self) -> dict:
        return {"status": "ok"}

    def metrics(self) -> str:
        requests = self.requests()
        by_status = Counter(request.status for request in requests)
        archived = Counter(request.status for request in requests if is_archived(request))
        lines = [
            "# HELP trial_funnel_requests_total Cached trial requests per status",
            "# TYPE trial_funnel_requests_total gauge",
        ]
        for status in RequestStatus:
            lines.append(f'trial_funnel_requests_total{{status="{status.value}"}} {by_status.get(status, 0)}')
        lines += [
            "# HELP trial_funnel_archived_total Archived trial requests per status",
            "# TYPE trial_funnel_archived_total gauge",
        ]
        for status in sorted(ARCHIVABLE_STATUSES, key=lambda item: item.value):
            lines.append(f'trial_funnel_archived_total{{status="{status.value}"}} {archived.get(status, 0)}')
        lines.append("")
        return "\n".join(lines)

    def requests(self) -> list[TrialRequest]:
        return self.coordinator.requests()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.coordinator.cache.subscribe(listener)

    async def load(self) -> list[TrialRequest]:
        try:
            return await self.coordinator.refresh()
        except PersistenceError as e:
            self._notice("error", "Could not load requests", str(e))
            return self.requests()

    def columns(self, include_archived: bool = False) -> dict[RequestStatus, list[TrialRequest]]:
        grouped: dict[RequestStatus, list[TrialRequest]] = {status: [] for status in RequestStatus}
        for request in self.requests():
            if not include_archived and is_archived(request):
                continue
            grouped[request.status].append(request)
        return grouped

    def archived_requests(self) -> list[TrialRequest]:
        return [request for request in self.requests() if is_archived(request)]

    def affordances(self, request: TrialRequest) -> RequestAffordances:
        archived = is_archived(request)
        eligible = request.status in ARCHIVABLE_STATUSES
        return RequestAffordances(
            is_archived=archived,
            is_restored=is_restored(request),
            is_successful=is_successful(request),
            can_archive=eligible and not archived,
            can_restore=eligible and archived,
        )

    def display_texts(self, request: TrialRequest) -> DisplayTexts:
        return display_texts(request)

    async def perform_transition(
        self,
        request: TrialRequest,
        target: RequestStatus,
        auxiliary: AuxiliaryData | None = None,
    ) -> MutationOutcome:
        change = build_transition_change(request, target, auxiliary, capture_required=False)
        outcome = await self.coordinator.mutate(change)
        if not outcome.succeeded:
            self._notice("error", "Status not changed", f"Request {request.id}: {outcome.error}")
            return outcome

        self._notice("info", "Status changed", f"Request {request.id} moved to {_STATUS_LABELS[target]}")
        if target == RequestStatus.TRIAL_ASSIGNED:
            await notify_trial_assigned(self._notifier, outcome.request or change.apply_to(request))
        return outcome

    async def drop(self, request_id: int, source_column: str, target_column: str) -> DropResult:
        result = await self.drag_drop.drop(request_id, source_column, target_column)
        if result.outcome is not None and not result.outcome.succeeded:
            self._notice("error", "Status not changed", f"Request {request_id}: {result.outcome.error}")
        return result

    async def submit_auxiliary(self, auxiliary: AuxiliaryData) -> MutationOutcome:
        outcome = await self.drag_drop.submit(auxiliary)
        if outcome.succeeded:
            self._notice("info", "Status changed", f"Request {outcome.request_id} updated")
        else:
            self._notice("error", "Status not changed", f"Request {outcome.request_id}: {outcome.error}")
        return outcome

    async def cancel_auxiliary(self) -> MutationOutcome:
        outcome = await self.drag_drop.cancel()
        if not outcome.succeeded:
            self._notice("error", "Could not revert the move", f"Request {outcome.request_id}: {outcome.error}")
        return outcome

    async def _write_notes(self, request: TrialRequest, notes: str, title: str) -> MutationOutcome:
        change = RequestChange(request.id, status=request.status, fields={"notes": notes})
        outcome = await self.coordinator.mutate(change)
        if outcome.succeeded:
            self._notice("info", title, f"Request {request.id}")
        else:
            self._notice("error", f"{title} failed", f"Request {request.id}: {outcome.error}")
        return outcome

    async def archive_one(self, request: TrialRequest) -> MutationOutcome:
        ensure_archivable(request)
        if is_archived(request):
            return MutationOutcome(request_id=request.id, succeeded=True, request=request)
        return await self._write_notes(request, archived_notes(request.notes), "Request archived")

    async def archive_successful_one(self, request: TrialRequest) -> MutationOutcome:
        if request.status != RequestStatus.SIGNED:
            raise ValidationError(f"request {request.id} is not signed", details={"request_id": request.id})
        if is_archived(request):
            return MutationOutcome(request_id=request.id, succeeded=True, request=request)
        return await self._write_notes(request, successful_archived_notes(request.notes), "Enrollment archived")

    async def restore_one(self, request: TrialRequest) -> MutationOutcome:
        ensure_archivable(request)
        try:
            current = await self._repository.get_request_by_id(request.id)
        except PersistenceError as e:
            self._notice("error", "Restore failed", f"Request {request.id}: {e}")
            return MutationOutcome(request_id=request.id, succeeded=False, error=e)
        if not is_archived(current):
            return MutationOutcome(request_id=current.id, succeeded=True, request=current)
        return await self._write_notes(current, restored_notes(current.notes), "Request restored")

    def _finish_batch(self, success_count: int, total: int, verb: str) -> int:
        level = "info" if success_count == total else "error"
        self._notice(level, f"{verb} requests", f"{verb} {success_count} of {total} requests")
        if success_count:
            self.coordinator.schedule_refresh()
        return success_count

    async def archive_batch(self, requests: Iterable[TrialRequest]) -> int:
        items = list(requests)
        return self._finish_batch(await self.archive.archive_batch(items), len(items), "Archived")

    async def archive_successful_batch(self, requests: Iterable[TrialRequest]) -> int:
        items = list(requests)
        return self._finish_batch(await self.archive.archive_successful_batch(items), len(items), "Archived")

    async def restore_batch(self, requests: Iterable[TrialRequest]) -> int:
        items = list(requests)
        return self._finish_batch(await self.archive.restore_batch(items), len(items), "Restored")

    def archive_candidates(self, now: datetime | None = None) -> ArchiveCandidates:
        return select_archive_candidates(
            self.requests(),
            refusal_days=self._config.refusal_archive_days,
            success_days=self._config.success_archive_days,
            now=now,
        )

    def refusal_statistics(self) -> list[RefusalStat]:
        refused = [request for request in self.requests() if request.status == RequestStatus.REFUSED]
        return refusal_statistics(refused)
