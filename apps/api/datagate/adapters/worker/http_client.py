"""HTTP client for the external processing worker."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from datagate.adapters.worker.base import (
    AnalysisOutcome,
    CleaningOutcome,
    WorkerLogicalError,
    WorkerReply,
    WorkerResponseError,
    WorkerTimeoutError,
    WorkerTransportError,
)
from datagate.core.logging_safety import safe_log_identifier

logger = logging.getLogger(__name__)

ANALYZE_PATH = "/internal/analyze"
CLEAN_PATH = "/internal/clean"
RAW_PATH = "/internal/raw"
RAW_WITH_OUTLIERS_PATH = "/internal/raw_with_outliers"


class DelegationClient:
    """Invokes the worker synchronously under a hard wall-clock limit.

    Every call is a single attempt. Retrying is left to callers.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def analyze(
        self,
        *,
        job_id: str,
        file_path: str,
        mode: str,
        options: dict[str, Any] | None = None,
    ) -> AnalysisOutcome:
        reply = await self._delegate(
            ANALYZE_PATH,
            {
                "job_id": job_id,
                "file_path": file_path,
                "mode": mode,
                "options": dict(options or {}),
            },
        )
        if not isinstance(reply.result, dict):
            raise WorkerResponseError("Worker analysis response is missing the result object")
        return AnalysisOutcome(result=reply.result)

    async def clean(
        self,
        *,
        job_id: str,
        file_path: str,
        mode: str,
        rules: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> CleaningOutcome:
        reply = await self._delegate(
            CLEAN_PATH,
            {
                "job_id": job_id,
                "file_path": file_path,
                "mode": mode,
                "rules": dict(rules),
                "options": dict(options or {}),
            },
        )
        if not isinstance(reply.cleaned_file_path, str) or not reply.cleaned_file_path.strip():
            raise WorkerResponseError("Worker cleaning response is missing cleaned_file_path")
        if not isinstance(reply.rules_applied, list):
            raise WorkerResponseError("Worker cleaning response is missing the rules_applied list")
        return CleaningOutcome(
            cleaned_file_path=reply.cleaned_file_path,
            rules_applied=list(reply.rules_applied),
            mode=reply.mode,
            summary=reply.summary if isinstance(reply.summary, dict) else {},
        )

    async def fetch_raw(self, *, file_path: str, with_outliers: bool = False) -> dict[str, Any]:
        """Proxy a raw-data read; the answer is passed through untouched."""
        path = RAW_WITH_OUTLIERS_PATH if with_outliers else RAW_PATH
        response = await self._post(path, {"file_path": file_path})
        payload = self._decode_json(response)
        if not isinstance(payload, dict):
            raise WorkerResponseError("Worker raw data response is not an object")
        return payload

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _delegate(self, path: str, body: dict[str, Any]) -> WorkerReply:
        safe_job_id = safe_log_identifier(body.get("job_id"), prefix="jid")
        logger.info("delegation.request job_id=%s path=%s mode=%s", safe_job_id, path, body.get("mode"))

        response = await self._post(path, body)
        payload = self._decode_json(response)
        try:
            reply = WorkerReply.model_validate(payload)
        except PydanticValidationError as exc:
            raise WorkerResponseError("Worker response does not match the delegation contract") from exc

        if reply.status == "failed":
            raise WorkerLogicalError(str(reply.error) if reply.error else "Worker reported failure")
        return reply

    async def _post(self, path: str, body: dict[str, Any]) -> httpx.Response:
        try:
            # wait_for cancels the in-flight request when the limit expires.
            response = await asyncio.wait_for(self._client.post(path, json=body), timeout=self._timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise WorkerTimeoutError(f"Worker call to {path} exceeded {self._timeout_seconds:g}s") from exc
        except httpx.HTTPError as exc:
            raise WorkerTransportError(f"Worker call to {path} failed: {type(exc).__name__}") from exc

        if not response.is_success:
            raise WorkerTransportError(
                f"Worker returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _decode_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise WorkerResponseError("Worker response is not valid JSON") from exc


__all__ = ["DelegationClient"]
