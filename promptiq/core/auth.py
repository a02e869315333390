"""
Bearer-token identity for PromptIQ.

Sign-in and token issuance live with the identity provider; this module only
decodes the JWT it hands out and resolves the current user for a request.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from promptiq.core.config import Settings, get_settings
from promptiq.core.exceptions import AuthenticationError


@dataclass
class CurrentUser:
    """Identity of the authenticated caller."""

    id: str
    email: str | None = None
    roles: list[str] = field(default_factory=lambda: ["user"])


class JWTHandler:
    """Handles JWT token creation and validation."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> "JWTHandler":
        return cls(settings.jwt_secret_key, settings.jwt_algorithm)

    def create_access_token(
        self,
        user: CurrentUser,
        expires_delta: timedelta = timedelta(minutes=30),
    ) -> str:
        """Create an access token for a user."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "email": user.email,
            "roles": user.roles,
            "iat": int(now.timestamp()),
            "exp": int((now + expires_delta).timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode_token(self, token: str) -> CurrentUser:
        """Decode and validate a JWT token."""
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {e}")

        subject = payload.get("sub")
        if not subject:
            raise AuthenticationError("Token has no subject")

        return CurrentUser(
            id=str(subject),
            email=payload.get("email"),
            roles=payload.get("roles", ["user"]),
        )


_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    """FastAPI dependency resolving the authenticated user."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Unauthorized")
    return JWTHandler.from_settings(settings).decode_token(credentials.credentials)
