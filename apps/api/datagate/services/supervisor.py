"""Supervision of detached delegation tasks."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
import logging
from typing import Any, Literal

from datagate.core.logging_safety import safe_log_identifier
from datagate.errors import ApiError

logger = logging.getLogger(__name__)

Operation = Literal["analysis", "cleaning"]


@dataclass(slots=True)
class DelegationHandle:
    job_id: str
    operation: Operation
    task: asyncio.Task[None]

    @property
    def key(self) -> tuple[str, Operation]:
        return (self.job_id, self.operation)

    def done(self) -> bool:
        return self.task.done()


@dataclass(slots=True, frozen=True)
class DelegationFailure:
    job_id: str
    operation: Operation
    error_type: str
    message: str
    occurred_at: datetime


class DelegationInFlightError(ApiError):
    def __init__(self, job_id: str, operation: Operation) -> None:
        super().__init__(
            status_code=409,
            code="JOB_ALREADY_RUNNING",
            message="Job already has an active delegation for this operation.",
            details={"job_id": job_id, "operation": operation},
        )


class DelegationSupervisor:
    """Owns background delegation tasks and collects their failures.

    At most one task runs per ``(job_id, operation)``. A task that ends with an
    exception is reported through the done-callback: logged with its traceback
    and kept in :attr:`failures` for inspection.
    """

    def __init__(self, *, max_failures: int = 200) -> None:
        self._in_flight: dict[tuple[str, Operation], DelegationHandle] = {}
        self.failures: deque[DelegationFailure] = deque(maxlen=max_failures)

    def is_in_flight(self, job_id: str, operation: Operation) -> bool:
        return (job_id, operation) in self._in_flight

    def ensure_idle(self, job_id: str, operation: Operation) -> None:
        if self.is_in_flight(job_id, operation):
            raise DelegationInFlightError(job_id, operation)

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def spawn(self, job_id: str, operation: Operation, coro: Coroutine[Any, Any, None]) -> DelegationHandle:
        key = (job_id, operation)
        if key in self._in_flight:
            coro.close()
            raise DelegationInFlightError(job_id, operation)

        task = asyncio.get_running_loop().create_task(coro, name=f"delegation:{operation}:{job_id}")
        handle = DelegationHandle(job_id=job_id, operation=operation, task=task)
        self._in_flight[key] = handle
        task.add_done_callback(lambda _: self._on_done(handle))
        logger.info(
            "delegation.spawned job_id=%s operation=%s",
            safe_log_identifier(job_id, prefix="jid"),
            operation,
        )
        return handle

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every in-flight task, including ones spawned while waiting."""
        while self._in_flight:
            pending = {handle.task for handle in self._in_flight.values()}
            done, _ = await asyncio.wait(pending, timeout=timeout)
            # Give done-callbacks a turn so bookkeeping is settled on return.
            await asyncio.sleep(0)
            if not done:
                return

    async def shutdown(self, timeout: float) -> None:
        await self.drain(timeout=timeout)
        leftovers = [handle.task for handle in self._in_flight.values()]
        for task in leftovers:
            task.cancel()
        if leftovers:
            await asyncio.gather(*leftovers, return_exceptions=True)
            logger.warning("delegation.shutdown_cancelled count=%s", len(leftovers))

    def _on_done(self, handle: DelegationHandle) -> None:
        if self._in_flight.get(handle.key) is handle:
            del self._in_flight[handle.key]

        safe_job_id = safe_log_identifier(handle.job_id, prefix="jid")
        if handle.task.cancelled():
            logger.warning("delegation.cancelled job_id=%s operation=%s", safe_job_id, handle.operation)
            return

        exc = handle.task.exception()
        if exc is None:
            logger.info("delegation.finished job_id=%s operation=%s", safe_job_id, handle.operation)
            return

        self.failures.append(
            DelegationFailure(
                job_id=handle.job_id,
                operation=handle.operation,
                error_type=type(exc).__name__,
                message=str(exc),
                occurred_at=datetime.now(UTC),
            )
        )
        logger.error(
            "delegation.task_failed job_id=%s operation=%s error_type=%s",
            safe_job_id,
            handle.operation,
            type(exc).__name__,
            exc_info=exc,
        )
