"""End-to-end delegation flow, result views, reports and artifact download."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
import shutil
import tempfile
import unittest

from fastapi.testclient import TestClient
import httpx

from datagate.adapters.worker import DelegationClient
from datagate.core.config import get_settings
from datagate.domain.results import ResultEnvelope
from datagate.main import create_app
from datagate.repositories.audit import AuditEventType

OWNER_HEADERS = {"Authorization": "Bearer test:user-a"}
ADMIN_HEADERS = {"Authorization": "Bearer test:admin-1:admin"}
CSV_BYTES = b"id,amount\n" + b"1,10\n" * 2046

ANALYSIS_RESULT = {
    "cleaned_data": {"rows": 2046, "columns": 2, "preview": [{"id": 1, "amount": 10}]},
    "quality_report": {
        "missing_rate": 0.0,
        "duplicate_rate": 0.99,
        "outlier_rate": 0.01,
        "column_analysis": {"amount": {"dtype": "int", "missing": 0}},
    },
    "meta": {
        "analysis_type": "in-memory",
        "mode": "normal",
        "file_size_bytes": 10240,
        "started_at": "2026-01-05T10:00:00Z",
        "completed_at": "2026-01-05T10:00:01Z",
        "duration_ms": 812,
    },
}


class _SettingsEnvCase(unittest.TestCase):
    _env_keys = (
        "DATAGATE_AUTH_PROVIDER",
        "DATAGATE_JWT_SECRET",
        "DATAGATE_AUDIT_DATABASE_URL",
        "DATAGATE_UPLOAD_DIR",
    )

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        self.upload_dir = tempfile.mkdtemp(prefix="datagate-uploads-")
        os.environ["DATAGATE_AUTH_PROVIDER"] = "mock"
        os.environ["DATAGATE_JWT_SECRET"] = "test-jwt-secret"
        os.environ["DATAGATE_AUDIT_DATABASE_URL"] = "sqlite://"
        os.environ["DATAGATE_UPLOAD_DIR"] = self.upload_dir
        get_settings.cache_clear()

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()
        shutil.rmtree(self.upload_dir, ignore_errors=True)


class _FakeWorker:
    """Answers the worker contract and writes cleaned artifacts next to the uploads."""

    def __init__(self, artifact_dir: str) -> None:
        self.artifact_dir = Path(artifact_dir)
        self.analysis_delay = 0.0
        self.fail_cleaning = False

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if request.url.path == "/internal/analyze":
            if self.analysis_delay:
                await asyncio.sleep(self.analysis_delay)
            return httpx.Response(200, json={"status": "ok", "job_id": body["job_id"], "result": ANALYSIS_RESULT})
        if request.url.path == "/internal/clean":
            if self.fail_cleaning:
                return httpx.Response(200, json={"status": "failed", "error": "rule crashed"})
            cleaned = self.artifact_dir / f"{body['job_id']}-cleaned.csv"
            cleaned.write_bytes(b"id,amount\n1,10\n")
            return httpx.Response(
                200,
                json={
                    "status": "ok",
                    "mode": body["mode"],
                    "cleaned_file_path": str(cleaned),
                    "rules_applied": [{"rule": "drop_duplicates", "rows_affected": 2045}],
                    "summary": {"rows_removed": 2045, "rows_remaining": 1},
                },
            )
        return httpx.Response(404, json={"detail": "unknown path"})


class DelegationFlowApiTests(_SettingsEnvCase):
    def _app(self, *, timeout_seconds: float = 2.0):
        self.worker = _FakeWorker(self.upload_dir)
        app = create_app()
        app.state.delegation_client = DelegationClient(
            base_url="http://worker.test",
            timeout_seconds=timeout_seconds,
            transport=httpx.MockTransport(self.worker),
        )
        return app

    def _upload(self, client: TestClient) -> str:
        response = client.post(
            "/upload",
            headers=OWNER_HEADERS,
            files={"file": ("sales.csv", CSV_BYTES, "text/csv")},
        )
        self.assertEqual(response.status_code, 202)
        return response.json()["job_id"]

    def _analyze(self, client: TestClient, app, job_id: str) -> dict:
        response = client.post(f"/analyze/{job_id}", headers=OWNER_HEADERS)
        self.assertEqual(response.status_code, 202)
        client.portal.call(app.state.supervisor.drain)
        return response.json()

    def test_worked_example_upload_analyze_and_read_results(self) -> None:
        app = self._app()
        with TestClient(app) as client:
            job_id = self._upload(client)
            self.assertEqual(client.get(f"/status/{job_id}", headers=OWNER_HEADERS).json(), {"status": "starting"})
            self.assertEqual(app.state.store.get_job(job_id).mode.value, "normal")

            accepted = self._analyze(client, app, job_id)
            self.assertEqual(accepted, {"job_id": job_id, "status": "running", "message": "analysis started"})

            status = client.get(f"/status/{job_id}", headers=OWNER_HEADERS).json()
            results = client.get(f"/results/{job_id}", headers=OWNER_HEADERS)
            listing = client.get("/jobs", headers=OWNER_HEADERS).json()

        self.assertEqual(status, {"status": "completed"})
        self.assertEqual(results.status_code, 200)
        self.assertEqual(
            results.json(),
            {"cleaned_data": ANALYSIS_RESULT["cleaned_data"], "quality_report": ANALYSIS_RESULT["quality_report"]},
        )
        self.assertTrue(listing[0]["has_analysis"])
        self.assertFalse(listing[0]["has_cleaning"])
        self.assertEqual(
            [event.event_type for event in app.state.audit.list_for_job(job_id)],
            [
                AuditEventType.JOB_CREATED,
                AuditEventType.FILE_UPLOADED,
                AuditEventType.ANALYSIS_ENQUEUED,
                AuditEventType.ANALYSIS_STARTED,
                AuditEventType.ANALYSIS_COMPLETED,
            ],
        )

    def test_worked_example_with_timeout_fails_job_and_hides_results(self) -> None:
        app = self._app(timeout_seconds=0.05)
        self.worker.analysis_delay = 1.0
        with TestClient(app) as client:
            job_id = self._upload(client)
            self._analyze(client, app, job_id)

            status = client.get(f"/status/{job_id}", headers=OWNER_HEADERS).json()
            results = client.get(f"/results/{job_id}", headers=OWNER_HEADERS)

        self.assertEqual(status, {"status": "failed"})
        self.assertEqual(results.status_code, 404)
        failed = app.state.audit.list_for_job(job_id)[-1]
        self.assertEqual(failed.event_type, AuditEventType.ANALYSIS_FAILED)
        self.assertEqual(failed.payload["failure_kind"], "timeout")

    def test_second_analyze_is_rejected_by_lifecycle(self) -> None:
        app = self._app()
        with TestClient(app) as client:
            job_id = self._upload(client)
            self._analyze(client, app, job_id)

            response = client.post(f"/analyze/{job_id}", headers=OWNER_HEADERS)

        self.assertEqual(response.status_code, 409)
        payload = response.json()
        self.assertEqual(payload["code"], "FSM_TRANSITION_INVALID")
        self.assertEqual(payload["details"]["current_status"], "completed")
        self.assertEqual(payload["details"]["attempted_event"], "analysis_delegated")
        self.assertEqual(payload["details"]["allowed_events"], ["cleaning_delegated"])

    def test_analysis_export_report_shape(self) -> None:
        app = self._app()
        with TestClient(app) as client:
            job_id = self._upload(client)
            self._analyze(client, app, job_id)
            response = client.get(f"/results/{job_id}/export", headers=OWNER_HEADERS)

        self.assertEqual(response.status_code, 200)
        report = response.json()
        self.assertEqual(
            report["meta"],
            {
                "job_id": job_id,
                "file_path": None,
                "file_size_bytes": 10240,
                "mode": "normal",
                "analysis_type": "in-memory",
                "started_at": "2026-01-05T10:00:00Z",
                "completed_at": "2026-01-05T10:00:01Z",
                "duration_ms": 812,
                "version": "1.0",
            },
        )
        self.assertEqual(report["dataset_summary"], {"rows": 2046, "columns": 2})
        self.assertEqual(report["quality_overview"], {"missing_rate": 0.0, "duplicate_rate": 0.99, "error_rate": 0.01})
        self.assertEqual(report["column_analysis"], {"amount": {"dtype": "int", "missing": 0}})
        self.assertEqual(report["limitations"], {"approximate_metrics": False, "skipped_checks": []})

    def test_undecodable_stored_result_is_reported_not_served(self) -> None:
        app = self._app()
        with TestClient(app) as client:
            job_id = self._upload(client)
            self._analyze(client, app, job_id)
            record = app.state.store.get_analysis_result(job_id)
            record.envelope = ResultEnvelope(schema_version=2, kind="analysis", body={})

            response = client.get(f"/results/{job_id}", headers=OWNER_HEADERS)

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["code"], "RESULT_UNREADABLE")

    def test_results_are_404_before_analysis(self) -> None:
        app = self._app()
        with TestClient(app) as client:
            job_id = self._upload(client)
            for path in (f"/results/{job_id}", f"/results/{job_id}/export", f"/cleaning-result/{job_id}"):
                with self.subTest(path=path):
                    response = client.get(path, headers=OWNER_HEADERS)
                    self.assertEqual(response.status_code, 404)
                    self.assertEqual(response.json()["code"], "RESOURCE_NOT_FOUND")

    def test_cleaning_flow_exposes_result_report_and_artifact(self) -> None:
        app = self._app()
        with TestClient(app) as client:
            job_id = self._upload(client)
            self._analyze(client, app, job_id)

            accepted = client.post(
                f"/clean/{job_id}",
                headers=OWNER_HEADERS,
                json={"mode": "manual", "rules": {"drop_duplicates": True}},
            )
            client.portal.call(app.state.supervisor.drain)

            status = client.get(f"/status/{job_id}", headers=OWNER_HEADERS).json()
            result = client.get(f"/cleaning-result/{job_id}", headers=OWNER_HEADERS)
            report = client.get(f"/cleaning-result/{job_id}/export", headers=OWNER_HEADERS)
            download = client.get(f"/cleaned/{job_id}", headers=OWNER_HEADERS)
            admin_download = client.get(f"/cleaned/{job_id}", headers=ADMIN_HEADERS)
            listing = client.get("/jobs", headers=OWNER_HEADERS).json()

        self.assertEqual(accepted.status_code, 202)
        self.assertEqual(accepted.json()["status"], "cleaning")
        self.assertEqual(status, {"status": "cleaned"})

        self.assertEqual(result.status_code, 200)
        body = result.json()
        self.assertEqual(body["job_id"], job_id)
        self.assertEqual(body["mode"], "manual")
        self.assertEqual(body["rules_applied"], [{"rule": "drop_duplicates", "rows_affected": 2045}])
        self.assertEqual(body["summary"], {"rows_removed": 2045, "rows_remaining": 1})
        self.assertIn("created_at", body)
        self.assertIn("updated_at", body)

        exported = report.json()
        self.assertEqual(exported["meta"]["cleaning_mode"], "manual")
        self.assertEqual(exported["meta"]["dataset_mode"], "normal")
        self.assertEqual(exported["meta"]["file_name"], "sales.csv")
        self.assertEqual(exported["meta"]["version"], "1.0")
        self.assertEqual(exported["summary"]["rules_applied"], 1)
        self.assertEqual(exported["summary"]["rows_removed"], 2045)
        self.assertEqual(exported["rules_applied"], body["rules_applied"])

        self.assertEqual(download.status_code, 200)
        self.assertTrue(download.headers["content-type"].startswith("text/csv"))
        self.assertIn(f'{job_id}-cleaned.csv', download.headers["content-disposition"])
        self.assertTrue(download.headers["content-disposition"].startswith("attachment"))
        self.assertEqual(download.content, b"id,amount\n1,10\n")
        self.assertEqual(admin_download.status_code, 200)
        self.assertTrue(listing[0]["has_cleaning"])

        rule_events = [
            event
            for event in app.state.audit.list_for_job(job_id)
            if event.event_type is AuditEventType.RULE_APPLIED
        ]
        self.assertEqual(len(rule_events), 1)

    def test_clean_without_body_uses_auto_mode(self) -> None:
        app = self._app()
        with TestClient(app) as client:
            job_id = self._upload(client)
            self._analyze(client, app, job_id)
            accepted = client.post(f"/clean/{job_id}", headers=OWNER_HEADERS)
            client.portal.call(app.state.supervisor.drain)
            result = client.get(f"/cleaning-result/{job_id}", headers=OWNER_HEADERS).json()

        self.assertEqual(accepted.status_code, 202)
        self.assertEqual(result["mode"], "auto")

    def test_clean_rejects_unknown_mode(self) -> None:
        app = self._app()
        with TestClient(app) as client:
            job_id = self._upload(client)
            response = client.post(f"/clean/{job_id}", headers=OWNER_HEADERS, json={"mode": "aggressive"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

    def test_failed_cleaning_falls_back_to_completed_without_artifact(self) -> None:
        app = self._app()
        self.worker.fail_cleaning = True
        with TestClient(app) as client:
            job_id = self._upload(client)
            self._analyze(client, app, job_id)
            client.post(f"/clean/{job_id}", headers=OWNER_HEADERS)
            client.portal.call(app.state.supervisor.drain)

            status = client.get(f"/status/{job_id}", headers=OWNER_HEADERS).json()
            download = client.get(f"/cleaned/{job_id}", headers=OWNER_HEADERS)
            results = client.get(f"/results/{job_id}", headers=OWNER_HEADERS)

        self.assertEqual(status, {"status": "completed"})
        self.assertEqual(download.status_code, 404)
        self.assertEqual(results.status_code, 200)
        failed = app.state.audit.list_for_job(job_id)[-1]
        self.assertEqual(failed.event_type, AuditEventType.CLEANING_FAILED)
        self.assertEqual(failed.payload["failure_kind"], "logical")

    def test_cleaned_artifact_missing_on_disk_is_404(self) -> None:
        app = self._app()
        with TestClient(app) as client:
            job_id = self._upload(client)
            self._analyze(client, app, job_id)
            client.post(f"/clean/{job_id}", headers=OWNER_HEADERS)
            client.portal.call(app.state.supervisor.drain)
            Path(app.state.store.get_job(job_id).cleaned_path).unlink()

            response = client.get(f"/cleaned/{job_id}", headers=OWNER_HEADERS)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"code": "RESOURCE_NOT_FOUND", "message": "Resource not found"})

    def test_deleting_cleaned_job_removes_results_and_both_files(self) -> None:
        app = self._app()
        with TestClient(app) as client:
            job_id = self._upload(client)
            self._analyze(client, app, job_id)
            client.post(f"/clean/{job_id}", headers=OWNER_HEADERS)
            client.portal.call(app.state.supervisor.drain)
            job = app.state.store.get_job(job_id)
            source_path, cleaned_path = job.source_path, job.cleaned_path

            deleted = client.request("DELETE", "/jobs", headers=OWNER_HEADERS, json={"job_ids": [job_id]})
            results = client.get(f"/results/{job_id}", headers=OWNER_HEADERS)

        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(results.status_code, 404)
        self.assertIsNone(app.state.store.get_analysis_result(job_id))
        self.assertIsNone(app.state.store.get_cleaning_result(job_id))
        self.assertFalse(Path(source_path).exists())
        self.assertFalse(Path(cleaned_path).exists())


if __name__ == "__main__":
    unittest.main()
