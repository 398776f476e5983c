"""Authentication provider interfaces."""

from abc import ABC, abstractmethod

from datagate.schemas.auth import AuthPrincipal

_ROLES = frozenset({"user", "admin"})


class AuthVerificationError(Exception):
    """Raised when a token cannot be verified or normalized."""


class TokenVerifier(ABC):
    """Provider-neutral credential interface."""

    @abstractmethod
    def issue_token(self, *, user_id: str, role: str) -> str:
        """Produce an opaque bearer credential carrying subject id and role."""

    @abstractmethod
    def verify_token(self, token: str) -> AuthPrincipal:
        """Verify token and return normalized principal."""


def build_principal(user_id: str, role: str) -> AuthPrincipal:
    """Normalize verified claims, rejecting roles outside the closed set."""
    user_id = user_id.strip()
    role = role.strip()
    if not user_id:
        raise AuthVerificationError("Token missing user identity")
    if role not in _ROLES:
        raise AuthVerificationError("Token carries an unknown role")
    return AuthPrincipal(user_id=user_id, role=role)


__all__ = ["AuthVerificationError", "TokenVerifier", "build_principal"]
