"""JWT verification for tokens issued by the identity provider."""

from datetime import datetime, timezone, timedelta
from typing import Any

from jose import jwt

from app.config import settings


def _get_jwt_verification_key_and_algorithms() -> tuple[str, list[str]]:
    """Return (key, algorithms) for verifying access tokens."""
    if settings.use_rs256:
        return settings.jwt_public_key.strip(), ["RS256"]
    return settings.secret_key, [settings.jwt_algorithm]


def _get_jwt_signing_key_and_algorithm() -> tuple[str, str]:
    if settings.use_rs256:
        if not settings.jwt_private_key.strip():
            raise RuntimeError("JWT_PRIVATE_KEY is required to mint RS256 tokens")
        return settings.jwt_private_key.strip(), "RS256"
    return settings.secret_key, settings.jwt_algorithm


def decode_token(token: str) -> dict[str, Any]:
    key, algorithms = _get_jwt_verification_key_and_algorithms()
    options = {"verify_aud": bool(settings.jwt_audience)}
    return jwt.decode(
        token,
        key,
        algorithms=algorithms,
        audience=settings.jwt_audience or None,
        options=options,
    )


def create_access_token(user_id: str) -> str:
    """Mint a token the way the identity provider would (dev tooling and tests)."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    payload: dict[str, Any] = {"sub": str(user_id), "exp": expire}
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    key, algorithm = _get_jwt_signing_key_and_algorithm()
    result = jwt.encode(payload, key, algorithm=algorithm)
    return result if isinstance(result, str) else result.decode("utf-8")
