"""Job access control shared by every job-scoped operation."""

import logging

from datagate.core.logging_safety import safe_log_identifier
from datagate.errors import NotFoundError
from datagate.repositories.memory import InMemoryStore, JobRecord
from datagate.schemas.auth import AuthPrincipal

logger = logging.getLogger(__name__)


class OwnershipGuard:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def resolve_accessible(self, *, job_id: str, principal: AuthPrincipal) -> JobRecord | None:
        """Return the job when the principal owns it or is an admin, otherwise ``None``."""
        job = self._store.get_job(job_id)
        if job is None:
            return None
        if principal.is_admin or job.owner_id == principal.user_id:
            return job

        logger.info(
            "ownership.denied job_id=%s principal_id=%s",
            safe_log_identifier(job_id, prefix="jid"),
            safe_log_identifier(principal.user_id, prefix="pid"),
        )
        return None

    def require_accessible(self, *, job_id: str, principal: AuthPrincipal) -> JobRecord:
        # Foreign and missing jobs share one answer so existence never leaks.
        job = self.resolve_accessible(job_id=job_id, principal=principal)
        if job is None:
            raise NotFoundError()
        return job

    def visible_jobs(self, *, principal: AuthPrincipal) -> list[JobRecord]:
        owner_id = None if principal.is_admin else principal.user_id
        return self._store.list_jobs(owner_id=owner_id)
