import secrets

from fastapi import Header, HTTPException, status

from .settings import settings


async def require_bearer_token(
    authorization: str | None = Header(default=None),
) -> None:
    """
    Optional shared-secret guard.

    When API_AUTH_TOKEN is unset the API is open. Otherwise callers must send
    `Authorization: Bearer <token>` with exactly that value.
    """
    expected = settings.api_auth_token
    if not expected:
        return

    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
        )
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Authorization header, expected 'Bearer <token>'",
        )
    if not secrets.compare_digest(token.strip(), expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API token",
        )
