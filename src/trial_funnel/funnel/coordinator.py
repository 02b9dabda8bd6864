"""
Optimistic writes against the cached request list.

Every mutation follows the same order: cancel the outstanding list read,
snapshot the cache, apply the change locally, then issue the write. A failed
write puts the snapshot back wholesale; a successful one leaves the cache as
is and schedules a background read to pick up server-computed fields.

A staged change waiting for auxiliary data counts as outstanding: no
background read replaces the cache until it is committed or released.

Rolling back a snapshot also discards optimistic changes made by other
mutations after it was taken. Those mutations still settle on their own.
"""

import asyncio
import logging
from dataclasses import dataclass

from trial_funnel.errors import PersistenceError
from trial_funnel.funnel.cache import CacheSnapshot, RequestCache
from trial_funnel.models import RequestChange, TrialRequest
from trial_funnel.persistence import RequestRepository

logger = logging.getLogger(__name__)


def _log_context(change: RequestChange) -> dict:
    return {
        "request_id": change.request_id,
        "target_status": change.status.value if change.status is not None else None,
    }


@dataclass(frozen=True)
class StagedChange:
    change: RequestChange
    snapshot: CacheSnapshot


@dataclass(frozen=True)
class MutationOutcome:
    request_id: int
    succeeded: bool
    request: TrialRequest | None = None
    error: PersistenceError | None = None


class OptimisticMutationCoordinator:
    def __init__(
        self,
        repository: RequestRepository,
        cache: RequestCache | None = None,
        background_refresh: bool = True,
    ) -> None:
        self._repository = repository
        self.cache = cache if cache is not None else RequestCache()
        self._background_refresh = background_refresh
        self._read_task: asyncio.Task | None = None
        self._pending_writes = 0
        self._open_stages: set[str] = set()
        self._refresh_deferred = False

    def requests(self) -> list[TrialRequest]:
        return self.cache.read()

    @property
    def pending_read(self) -> asyncio.Task | None:
        task = self._read_task
        return task if task is not None and not task.done() else None

    async def _read(self) -> list[TrialRequest]:
        requests = await self._repository.list_requests()
        self.cache.replace(requests)
        return requests

    def _start_read(self) -> asyncio.Task:
        self.cancel_pending_read()
        task = asyncio.get_running_loop().create_task(self._read())
        task.add_done_callback(self._log_read_failure)
        self._read_task = task
        return task

    @staticmethod
    def _log_read_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("trial request list refresh failed: %s", exc)

    async def refresh(self) -> list[TrialRequest]:
        """Load the list into the cache.

        Returns the cached view unchanged when a mutation cancels the read.
        """
        task = self._start_read()
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task.cancelled():
            logger.debug("list read cancelled by a newer mutation")
            return self.cache.read()
        return task.result()

    def _outstanding(self) -> int:
        return self._pending_writes + len(self._open_stages)

    def schedule_refresh(self) -> asyncio.Task | None:
        if self._outstanding():
            # the last write or open stage to settle reconciles for everyone
            self._refresh_deferred = True
            return None
        self._refresh_deferred = False
        return self._start_read()

    def cancel_pending_read(self) -> bool:
        task = self._read_task
        if task is not None and not task.done():
            task.cancel()
            return True
        return False

    def stage(self, change: RequestChange) -> StagedChange:
        self.cancel_pending_read()
        snapshot = self.cache.snapshot()
        self.cache.apply(change)
        self._open_stages.add(snapshot.snapshot_id)
        logger.debug("staged change for request %s under %s", change.request_id, snapshot.snapshot_id)
        return StagedChange(change=change, snapshot=snapshot)

    @property
    def open_stages(self) -> int:
        return len(self._open_stages)

    def release(self, staged: StagedChange) -> None:
        """Drop a stage that will never be committed, keeping its cached value."""
        if staged.snapshot.snapshot_id not in self._open_stages:
            return
        self._open_stages.discard(staged.snapshot.snapshot_id)
        if not self._outstanding() and self._refresh_deferred:
            self.schedule_refresh()

    async def commit(self, staged: StagedChange, change: RequestChange | None = None) -> MutationOutcome:
        final = change if change is not None else staged.change
        if final.request_id != staged.change.request_id:
            raise ValueError("final change must target the staged request")
        if change is not None:
            self.cancel_pending_read()
            self.cache.apply(final)

        self._open_stages.discard(staged.snapshot.snapshot_id)
        self._pending_writes += 1
        write = asyncio.ensure_future(self._write(final))
        try:
            record = await asyncio.shield(write)
        except asyncio.CancelledError:
            # an issued write always runs to completion and is always settled
            write.add_done_callback(lambda task: self._settle_detached(task, staged))
            raise
        except Exception as exc:
            self.cache.restore(staged.snapshot)
            self._write_settled(succeeded=False)
            if not isinstance(exc, PersistenceError):
                raise
            logger.warning(
                "write for request %s failed, cache rolled back: %s",
                final.request_id,
                exc,
                extra=_log_context(final),
            )
            return MutationOutcome(request_id=final.request_id, succeeded=False, error=exc)

        logger.info("request %s updated", final.request_id, extra=_log_context(final))
        self._write_settled(succeeded=True)
        return MutationOutcome(request_id=final.request_id, succeeded=True, request=record)

    async def mutate(self, change: RequestChange) -> MutationOutcome:
        return await self.commit(self.stage(change))

    def _write_settled(self, succeeded: bool) -> None:
        self._pending_writes -= 1
        if succeeded and self._background_refresh:
            self._refresh_deferred = True
        if not self._outstanding() and self._refresh_deferred:
            self.schedule_refresh()

    def _settle_detached(self, task: asyncio.Task, staged: StagedChange) -> None:
        failed = task.cancelled() or task.exception() is not None
        if failed:
            logger.warning(
                "detached write for request %s failed, cache rolled back",
                staged.change.request_id,
                extra=_log_context(staged.change),
            )
            self.cache.restore(staged.snapshot)
        self._write_settled(succeeded=not failed)

    async def _write(self, change: RequestChange) -> TrialRequest:
        if change.status is None:
            return await self._repository.update_request_fields(change.request_id, dict(change.fields))
        return await self._repository.update_request_status(
            change.request_id,
            change.status,
            scheduled_date=change.scheduled_date,
            notes=change.notes,
        )
