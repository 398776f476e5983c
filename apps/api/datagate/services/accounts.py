"""Account registration and credential checks."""

import logging

import bcrypt
from starlette.concurrency import run_in_threadpool

from datagate.adapters.auth import TokenVerifier
from datagate.core.logging_safety import safe_log_identifier
from datagate.errors import ApiError, AuthError, NotFoundError
from datagate.repositories.memory import InMemoryStore, UserRecord
from datagate.schemas.auth import AuthPrincipal, User

logger = logging.getLogger(__name__)

_BCRYPT_ROUNDS = 12


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class AccountService:
    def __init__(self, store: InMemoryStore, *, tokens: TokenVerifier) -> None:
        self._store = store
        self._tokens = tokens

    async def register(self, *, email: str, password: str) -> tuple[User, str]:
        """Create a ``user`` account; elevated roles are provisioned out of band only."""
        self._ensure_email_free(email)
        # bcrypt is CPU bound; hash in the threadpool.
        password_hash = await run_in_threadpool(hash_password, password)
        # Re-checked: a concurrent registration may have won while hashing.
        self._ensure_email_free(email)
        record = self._store.create_user(email=email, password_hash=password_hash, role="user")
        logger.info("account.registered user_id=%s", safe_log_identifier(record.id, prefix="pid"))
        return self._to_user(record), self._issue(record)

    async def login(self, *, email: str, password: str) -> tuple[User, str]:
        record = self._store.get_user_by_email(email)
        if record is None or not await run_in_threadpool(verify_password, password, record.password_hash):
            logger.info("account.login_rejected email=%s", safe_log_identifier(email.lower(), prefix="em"))
            raise AuthError("Invalid email or password")

        logger.info("account.login user_id=%s", safe_log_identifier(record.id, prefix="pid"))
        return self._to_user(record), self._issue(record)

    def current_user(self, *, principal: AuthPrincipal) -> User:
        record = self._store.get_user(principal.user_id)
        if record is None:
            raise NotFoundError()
        return self._to_user(record)

    def _ensure_email_free(self, email: str) -> None:
        if self._store.get_user_by_email(email) is not None:
            raise ApiError(status_code=409, code="EMAIL_ALREADY_REGISTERED", message="Email already registered")

    def _issue(self, record: UserRecord) -> str:
        return self._tokens.issue_token(user_id=record.id, role=record.role)

    @staticmethod
    def _to_user(record: UserRecord) -> User:
        return User(id=record.id, email=record.email, role=record.role)
