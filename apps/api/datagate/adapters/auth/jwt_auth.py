"""Self-contained JWT credentials: issued at login, verified without callbacks."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from datagate.adapters.auth.base import AuthVerificationError, TokenVerifier, build_principal
from datagate.schemas.auth import AuthPrincipal


class JwtTokenVerifier(TokenVerifier):
    """Signs and verifies ``{sub, role, exp}`` tokens with a shared secret."""

    def __init__(self, *, secret: str, algorithm: str = "HS256", expiry_minutes: int = 7 * 24 * 60) -> None:
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self._secret = secret
        self._algorithm = algorithm
        self._expiry = timedelta(minutes=expiry_minutes)

    @property
    def expiry_seconds(self) -> int:
        return int(self._expiry.total_seconds())

    def issue_token(self, *, user_id: str, role: str) -> str:
        now = datetime.now(UTC)
        claims = {
            "sub": user_id,
            "role": role,
            "iat": int(now.timestamp()),
            "exp": int((now + self._expiry).timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify_token(self, token: str) -> AuthPrincipal:
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as exc:
            raise AuthVerificationError("Invalid or expired token") from exc

        return build_principal(str(claims.get("sub") or ""), str(claims.get("role") or "user"))


__all__ = ["JwtTokenVerifier"]
