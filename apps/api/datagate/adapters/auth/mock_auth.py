"""Mock auth verifier for local development and tests."""

from datagate.adapters.auth.base import AuthVerificationError, TokenVerifier, build_principal
from datagate.schemas.auth import AuthPrincipal


class MockTokenVerifier(TokenVerifier):
    """Accepts deterministic test tokens only.

    Expected token format:
    - ``test:<user_id>``
    - ``test:<user_id>:<role>`` with role ``user`` or ``admin``
    """

    def issue_token(self, *, user_id: str, role: str) -> str:
        return f"test:{user_id}:{role}"

    def verify_token(self, token: str) -> AuthPrincipal:
        parts = token.split(":")
        if len(parts) not in (2, 3) or parts[0] != "test":
            raise AuthVerificationError("Invalid token")

        role = parts[2] if len(parts) == 3 else "user"
        return build_principal(parts[1], role)


__all__ = ["MockTokenVerifier"]
