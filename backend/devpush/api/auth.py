import secrets

from fastapi import Request

from devpush.config import Settings
from devpush.errors import AuthError


def require_admin(request: Request) -> None:
    """Check the bearer token on control requests.

    Stands in for a real identity provider. With no token configured the
    check is off, which is only meant for local use.
    """
    settings: Settings = request.app.state.settings
    if not settings.auth_token:
        return

    auth = request.headers.get("authorization") or ""
    if not auth:
        raise AuthError("Missing auth token.", code=401)
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(
        token.strip().encode("utf-8"), settings.auth_token.encode("utf-8")
    ):
        raise AuthError("Could not verify your auth.", code=403)
