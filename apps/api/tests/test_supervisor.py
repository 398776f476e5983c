"""Delegation supervisor tests."""

from __future__ import annotations

import asyncio
import unittest

from datagate.services.supervisor import DelegationInFlightError, DelegationSupervisor


class DelegationSupervisorTests(unittest.IsolatedAsyncioTestCase):
    async def test_spawn_tracks_task_until_it_finishes(self) -> None:
        supervisor = DelegationSupervisor()
        release = asyncio.Event()

        async def work() -> None:
            await release.wait()

        handle = supervisor.spawn("job-1", "analysis", work())

        self.assertTrue(supervisor.is_in_flight("job-1", "analysis"))
        self.assertFalse(supervisor.is_in_flight("job-1", "cleaning"))
        self.assertEqual(handle.key, ("job-1", "analysis"))

        release.set()
        await supervisor.drain()

        self.assertTrue(handle.done())
        self.assertEqual(supervisor.in_flight_count(), 0)
        self.assertEqual(len(supervisor.failures), 0)

    async def test_duplicate_spawn_is_rejected_and_coroutine_closed(self) -> None:
        supervisor = DelegationSupervisor()
        release = asyncio.Event()
        started: list[str] = []

        async def work(tag: str) -> None:
            started.append(tag)
            await release.wait()

        supervisor.spawn("job-1", "analysis", work("first"))
        duplicate = work("second")
        with self.assertRaises(DelegationInFlightError) as context:
            supervisor.spawn("job-1", "analysis", duplicate)

        self.assertEqual(context.exception.status_code, 409)
        self.assertEqual(context.exception.payload.code, "JOB_ALREADY_RUNNING")
        self.assertEqual(context.exception.payload.details, {"job_id": "job-1", "operation": "analysis"})
        with self.assertRaises(DelegationInFlightError):
            supervisor.ensure_idle("job-1", "analysis")
        supervisor.ensure_idle("job-1", "cleaning")

        release.set()
        await supervisor.drain()
        self.assertEqual(started, ["first"])

    async def test_failed_task_is_reported_through_error_channel(self) -> None:
        supervisor = DelegationSupervisor()

        async def work() -> None:
            raise RuntimeError("worker exploded")

        with self.assertLogs("datagate.services.supervisor", level="ERROR") as captured:
            supervisor.spawn("job-1", "cleaning", work())
            await supervisor.drain()

        self.assertEqual(len(supervisor.failures), 1)
        failure = supervisor.failures[0]
        self.assertEqual(failure.job_id, "job-1")
        self.assertEqual(failure.operation, "cleaning")
        self.assertEqual(failure.error_type, "RuntimeError")
        self.assertEqual(failure.message, "worker exploded")
        self.assertTrue(any("delegation.task_failed" in line for line in captured.output))
        supervisor.ensure_idle("job-1", "cleaning")

    async def test_shutdown_cancels_tasks_still_running_after_grace(self) -> None:
        supervisor = DelegationSupervisor()

        async def work() -> None:
            await asyncio.sleep(10)

        handle = supervisor.spawn("job-1", "analysis", work())
        await supervisor.shutdown(timeout=0.01)

        self.assertTrue(handle.task.cancelled())
        self.assertEqual(supervisor.in_flight_count(), 0)
        self.assertEqual(len(supervisor.failures), 0)


if __name__ == "__main__":
    unittest.main()
