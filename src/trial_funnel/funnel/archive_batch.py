import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from trial_funnel.contracts.archive_markers import (
    SUCCESS_TAG,
    append_marker,
    build_archive_marker,
    build_restore_marker,
    build_success_marker,
    is_archived,
    remove_archive_markers,
)
from trial_funnel.contracts.request_lifecycle import ensure_archivable
from trial_funnel.errors import PersistenceError, ValidationError
from trial_funnel.models import RequestStatus, TrialRequest
from trial_funnel.persistence import RequestRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchiveResult:
    request_id: int
    success: bool
    notes: str
    error: str | None = None


def archived_notes(notes: str | None) -> str:
    return append_marker(notes, build_archive_marker())


def successful_archived_notes(notes: str | None) -> str:
    text = notes or ""
    if SUCCESS_TAG not in text:
        text = append_marker(text, build_success_marker())
    return append_marker(text, build_archive_marker())


def restored_notes(notes: str | None) -> str:
    return append_marker(remove_archive_markers(notes), build_restore_marker())


class ArchiveBatchProcessor:
    """Archives and restores requests straight through the repository.

    It never touches the cached list; callers refresh after a non-zero count.
    """

    def __init__(self, repository: RequestRepository) -> None:
        self._repository = repository

    async def _store_notes(self, request: TrialRequest, status: RequestStatus, notes: str) -> ArchiveResult:
        try:
            await self._repository.update_request_status(request.id, status, notes=notes)
        except PersistenceError as e:
            logger.warning(
                "archive write for request %s failed: %s",
                request.id,
                e,
                extra={"request_id": request.id, "status": status.value},
            )
            return ArchiveResult(request_id=request.id, success=False, notes=request.notes, error=str(e))
        return ArchiveResult(request_id=request.id, success=True, notes=notes)

    async def archive_one(self, request: TrialRequest) -> ArchiveResult:
        ensure_archivable(request)
        if is_archived(request):
            return ArchiveResult(request_id=request.id, success=True, notes=request.notes)
        return await self._store_notes(request, request.status, archived_notes(request.notes))

    async def archive_successful_one(self, request: TrialRequest) -> ArchiveResult:
        if request.status != RequestStatus.SIGNED:
            raise ValidationError(
                f"only signed requests can be archived as successful, request {request.id} is {request.status.value}",
                details={"request_id": request.id, "status": request.status.value},
            )
        if is_archived(request):
            return ArchiveResult(request_id=request.id, success=True, notes=request.notes)
        return await self._store_notes(request, RequestStatus.SIGNED, successful_archived_notes(request.notes))

    async def restore_one(self, request: TrialRequest) -> ArchiveResult:
        ensure_archivable(request)
        try:
            current = await self._repository.get_request_by_id(request.id)
        except PersistenceError as e:
            logger.warning(
                "could not load request %s for restore: %s", request.id, e, extra={"request_id": request.id}
            )
            return ArchiveResult(request_id=request.id, success=False, notes=request.notes, error=str(e))
        if not is_archived(current):
            return ArchiveResult(request_id=current.id, success=True, notes=current.notes)
        return await self._store_notes(current, current.status, restored_notes(current.notes))

    async def _run_batch(
        self,
        requests: Iterable[TrialRequest],
        operation: Callable[[TrialRequest], Awaitable[ArchiveResult]],
    ) -> list[ArchiveResult]:
        async def run(request: TrialRequest) -> ArchiveResult:
            try:
                return await operation(request)
            except ValidationError as e:
                return ArchiveResult(request_id=request.id, success=False, notes=request.notes, error=str(e))

        results = await asyncio.gather(*(run(request) for request in requests))
        success_count = sum(1 for result in results if result.success)
        logger.info(
            "batch finished: %s of %s succeeded",
            success_count,
            len(results),
            extra={"success_count": success_count, "total": len(results)},
        )
        return list(results)

    async def archive_batch(self, requests: Iterable[TrialRequest]) -> int:
        results = await self._run_batch(requests, self.archive_one)
        return sum(1 for result in results if result.success)

    async def archive_successful_batch(self, requests: Iterable[TrialRequest]) -> int:
        results = await self._run_batch(requests, self.archive_successful_one)
        return sum(1 for result in results if result.success)

    async def restore_batch(self, requests: Iterable[TrialRequest]) -> int:
        results = await self._run_batch(requests, self.restore_one)
        return sum(1 for result in results if result.success)
