"""Recurring batch scheduler.

One cycle moves through ``idle -> enumerating -> running -> aggregating ->
idle``.  Targets are visited one at a time in ascending id order with a
pause between them, and each result is handed to the result sink as soon as
it exists.

Batches never overlap.  A scheduled trigger that finds a batch in flight is
dropped and logged; a manual "run all" request is refused with
:class:`BatchAlreadyRunningError`.  Overlap is detected through a
:class:`BatchGuard`: :class:`LocalBatchGuard` for a single process, or the
Redis lock in :mod:`snippet_harvester.workers.batch_lock` when several
Celery workers share the schedule.

Single-target runs (:meth:`Scheduler.run_target`) bypass the guard and may
run alongside a batch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine, Sequence
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from snippet_harvester.api.metrics import (
    scheduler_batch_duration_seconds,
    scheduler_batches_total,
    scheduler_skipped_triggers_total,
)
from snippet_harvester.core.exceptions import (
    BatchAlreadyRunningError,
    TargetNotFoundError,
    TargetStoreUnavailableError,
)
from snippet_harvester.scraper.models import ExtractionResult, RunBatch, SchedulePolicy, Target
from snippet_harvester.scraper.runner import TargetRunner
from snippet_harvester.scraper.trigger import Trigger, parse_trigger

if TYPE_CHECKING:
    from snippet_harvester.core.context import EngineContext

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SchedulerState(str, Enum):
    IDLE = "idle"
    ENUMERATING = "enumerating"
    RUNNING = "running"
    AGGREGATING = "aggregating"


# ---------------------------------------------------------------------------
# Batch guards
# ---------------------------------------------------------------------------


class BatchGuard(Protocol):
    """Mutual exclusion for full batches."""

    async def try_acquire(self) -> bool: ...

    async def release(self) -> None: ...


class LocalBatchGuard:
    """In-process guard.  Check-and-set happens without an ``await`` in between."""

    def __init__(self) -> None:
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    async def try_acquire(self) -> bool:
        if self._held:
            return False
        self._held = True
        return True

    async def release(self) -> None:
        self._held = False


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class Scheduler:
    """Drives the target runner across all active targets.

    Args:
        context: Target store, result sink and the current policy.
        runner: Runs one target and never raises.
        guard: Overlap guard for full batches.
        timezone: IANA zone in which trigger expressions are interpreted.
        sleep: Awaitable used for the inter-target pause.
        clock: Returns the current time (timezone-aware UTC).
    """

    def __init__(
        self,
        context: EngineContext,
        runner: TargetRunner,
        *,
        guard: BatchGuard | None = None,
        timezone: str = "UTC",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._context = context
        self._runner = runner
        self._guard: BatchGuard = guard or LocalBatchGuard()
        self._timezone = timezone
        self._sleep = sleep
        self._clock = clock

        self._trigger: Trigger = parse_trigger(context.policy.trigger, timezone)
        self._state = SchedulerState.IDLE
        self._progress: tuple[int, int] = (0, 0)
        self._next_fire_at: datetime | None = None
        self._last_fired_at: datetime | None = None
        self._last_batch: RunBatch | None = None

        self._wake = asyncio.Event()
        self._stop_requested = False
        self._tasks: set[asyncio.Task[Any]] = set()
        self._serve_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def progress(self) -> tuple[int, int]:
        """``(current, total)`` while running, ``(0, 0)`` otherwise."""
        return self._progress

    @property
    def policy(self) -> SchedulePolicy:
        return self._context.policy

    @property
    def trigger(self) -> Trigger:
        return self._trigger

    @property
    def next_fire_at(self) -> datetime | None:
        return self._next_fire_at

    @property
    def last_batch(self) -> RunBatch | None:
        return self._last_batch

    def upcoming_fire(self) -> datetime | None:
        """Next fire time of the current trigger, whether or not the timer is serving."""
        return self._trigger.next_fire(self._clock())

    @property
    def running(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    # ------------------------------------------------------------------
    # Batch entry points
    # ------------------------------------------------------------------

    async def trigger_scheduled(self) -> RunBatch | None:
        """Run a batch for a cadence trigger.

        Returns ``None`` without running anything if another batch holds the
        guard; the skip is logged and counted, never queued.
        """
        if not await self._guard.try_acquire():
            scheduler_skipped_triggers_total.inc()
            logger.warning("scheduled_trigger_skipped", reason="batch_in_progress", state=self._state.value)
            return None
        try:
            return await self._run_batch("scheduled")
        finally:
            await self._guard.release()

    async def start_manual_batch(self) -> tuple[asyncio.Task[RunBatch], int]:
        """Enumerate targets now and run them in a background task.

        Enumeration happens before returning so that an unreachable target
        store is reported to the caller.

        Returns:
            The background task and the number of targets in the snapshot.

        Raises:
            BatchAlreadyRunningError: If a batch is in flight.
            TargetStoreUnavailableError: If the snapshot could not be read.
        """
        if not await self._guard.try_acquire():
            raise BatchAlreadyRunningError()
        try:
            policy = self._context.policy
            batch = RunBatch(trigger="manual", started_at=self._clock())
            try:
                targets = await self._enumerate()
            except TargetStoreUnavailableError as exc:
                self._abort(batch, exc)
                raise
        except BaseException:
            await self._guard.release()
            raise

        async def _run() -> RunBatch:
            try:
                return await self._execute(batch, targets, policy)
            finally:
                await self._guard.release()

        task = self._spawn(_run())
        return task, len(targets)

    async def run_target(self, target_id: int) -> ExtractionResult:
        """Run one target on demand and persist its result.

        Not subject to the batch guard.

        Raises:
            TargetNotFoundError: If the id is absent or the target is
                inactive.  No fetch is attempted.
        """
        target = await self._context.target_store.get(target_id)
        if target is None or not target.active:
            raise TargetNotFoundError(target_id)
        result = await self._runner.run(target, self._context.policy)
        await self._context.result_sink.append(result)
        return result

    # ------------------------------------------------------------------
    # Batch internals
    # ------------------------------------------------------------------

    async def _run_batch(self, kind: str) -> RunBatch:
        policy = self._context.policy
        batch = RunBatch(trigger=kind, started_at=self._clock())
        try:
            targets = await self._enumerate()
        except TargetStoreUnavailableError as exc:
            return self._abort(batch, exc)
        return await self._execute(batch, targets, policy)

    async def _enumerate(self) -> list[Target]:
        self._state = SchedulerState.ENUMERATING
        try:
            return list(await self._context.target_store.list_active())
        except TargetStoreUnavailableError:
            self._state = SchedulerState.IDLE
            raise
        except Exception as exc:
            self._state = SchedulerState.IDLE
            raise TargetStoreUnavailableError(f"{type(exc).__name__}: {exc}") from exc

    def _abort(self, batch: RunBatch, exc: Exception) -> RunBatch:
        batch.aborted = True
        batch.error = str(exc)
        batch.finished_at = self._clock()
        self._last_batch = batch
        self._state = SchedulerState.IDLE
        scheduler_batches_total.labels(status="aborted").inc()
        logger.error("batch_aborted", trigger=batch.trigger, error=batch.error)
        return batch

    async def _execute(self, batch: RunBatch, targets: Sequence[Target], policy: SchedulePolicy) -> RunBatch:
        total = len(targets)
        batch.total = total
        log = logger.bind(trigger=batch.trigger, total=total)
        log.info("batch_started", started_at=batch.started_at.isoformat())

        try:
            for index, target in enumerate(targets):
                if self._stop_requested:
                    batch.stopped_early = True
                    break
                if index > 0 and policy.inter_target_delay_ms > 0:
                    await self._sleep(policy.inter_target_delay_ms / 1000.0)
                    if self._stop_requested:
                        batch.stopped_early = True
                        break

                self._state = SchedulerState.RUNNING
                self._progress = (index + 1, total)
                result = await self._runner.run(target, policy)
                batch.results.append(result)
                await self._emit(result, batch)

            self._state = SchedulerState.AGGREGATING
            batch.finished_at = self._clock()
            status = "stopped" if batch.stopped_early else "completed"
            scheduler_batches_total.labels(status=status).inc()
            if batch.duration_seconds is not None:
                scheduler_batch_duration_seconds.observe(batch.duration_seconds)
            if batch.stopped_early:
                log.warning("batch_stopped_early", processed=len(batch.results))
            log.info(
                "batch_finished",
                status=status,
                succeeded=batch.succeeded,
                empty=batch.empty,
                failed=batch.failed,
                sink_failures=batch.sink_failures,
                duration_seconds=batch.duration_seconds,
            )
            return batch
        finally:
            if batch.finished_at is None:
                batch.finished_at = self._clock()
            self._last_batch = batch
            self._progress = (0, 0)
            self._state = SchedulerState.IDLE

    async def _emit(self, result: ExtractionResult, batch: RunBatch) -> None:
        try:
            await self._context.result_sink.append(result)
        except Exception:  # noqa: BLE001
            batch.sink_failures += 1
            logger.exception("result_sink_append_failed", target_id=result.target_id)

    # ------------------------------------------------------------------
    # Timer loop
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _wait_until(self, fire_at: datetime | None) -> bool:
        """Sleep until ``fire_at`` or a wake-up.  Returns ``True`` if the time was reached."""
        timeout: float | None = None
        if fire_at is not None:
            timeout = (fire_at - self._clock()).total_seconds()
            if timeout <= 0:
                return True
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=timeout)
        except TimeoutError:
            return True
        return False

    async def serve(self) -> None:
        """Fire scheduled batches until :meth:`request_stop` is called.

        Each fire spawns :meth:`trigger_scheduled` as its own task, so a
        long batch never delays the timer and overlap is left to the guard.
        """
        logger.info("scheduler_started", trigger=self._trigger.expression, timezone=self._timezone)
        try:
            while not self._stop_requested:
                self._wake.clear()
                now = self._clock()
                after = max(now, self._last_fired_at) if self._last_fired_at else now
                fire_at = self._trigger.next_fire(after)
                self._next_fire_at = fire_at
                logger.debug("scheduler_next_fire", next_fire_at=fire_at.isoformat() if fire_at else None)

                reached = await self._wait_until(fire_at)
                if self._stop_requested:
                    break
                if not reached or fire_at is None:
                    continue
                self._last_fired_at = fire_at
                logger.info("scheduled_trigger_fired", fire_at=fire_at.isoformat())
                self._spawn(self.trigger_scheduled())
        finally:
            self._next_fire_at = None
            logger.info("scheduler_stopped")

    def start(self) -> asyncio.Task[None]:
        """Start :meth:`serve` in the background and return its task."""
        if self.running:
            assert self._serve_task is not None
            return self._serve_task
        self._stop_requested = False
        self._serve_task = asyncio.create_task(self.serve())
        return self._serve_task

    def reconfigure(self, policy: SchedulePolicy) -> None:
        """Swap in a new policy and recompute the next fire time.

        A batch already running keeps the policy it started with.

        Raises:
            ScheduleConfigError: If the trigger expression is invalid.  The
                current policy stays in force.
        """
        trigger = parse_trigger(policy.trigger, self._timezone)
        self._context.policy = policy
        self._trigger = trigger
        self._last_fired_at = None
        self._wake.set()
        logger.info(
            "scheduler_reconfigured",
            trigger=policy.trigger,
            max_retries=policy.max_retries,
            timeout_ms=policy.timeout_ms,
            inter_target_delay_ms=policy.inter_target_delay_ms,
        )

    def request_stop(self) -> None:
        """Stop the timer and halt any batch before its next target."""
        self._stop_requested = True
        self._wake.set()

    async def join(self) -> None:
        """Wait for the timer loop and every spawned batch to finish."""
        pending: list[asyncio.Task[Any]] = list(self._tasks)
        if self._serve_task is not None:
            pending.append(self._serve_task)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        """Graceful stop: the current target finishes and is persisted, nothing new starts."""
        self.request_stop()
        await self.join()
