"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Bearer tokens arrive as `Authorization: Bearer <token>` and are resolved by
the TokenService on app.state (decrypt -> verify -> expiry).

  bearer_token()            raw token from the header; 401 if absent.
  get_current_account_id()  account id from a valid token; 409 bad_token otherwise.
  require_roles(*roles)     dependency factory; 401 unauthorized if the
                            account's role is not listed.
  request_meta()            ip / browser / country of the caller, for audit.

Errors are raised as AuthError subclasses and rendered by the handler in
api/main.py, so routes and dependencies share one error envelope.

Layer rule: may import fastapi because this module is part of the FastAPI
dependency injection system. No imports from api/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.errors import UnauthorizedError
from auth.models import Account, RequestMeta


def bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise UnauthorizedError("Authentication required.")
    token = auth_header[7:].strip()
    if not token:
        raise UnauthorizedError("Authentication required.")
    return token


def get_current_account_id(request: Request, token: str = Depends(bearer_token)) -> str:
    """Require a valid bearer token and return the account id it names.

    Use as a FastAPI dependency:
        @router.get("/profile")
        async def route(account_id: str = Depends(get_current_account_id)): ...
    """
    return request.app.state.tokens.resolve_account_id(token)


def require_roles(*roles: str) -> Callable[..., Account]:
    """Build a dependency that admits only accounts whose role is in roles.

    Use as a FastAPI dependency:
        @router.get("/users")
        async def route(admin: Account = Depends(require_roles("admin"))): ...
    """

    def dependency(request: Request, account_id: str = Depends(get_current_account_id)) -> Account:
        return request.app.state.accounts.check_role(account_id, roles)

    return dependency


def request_meta(request: Request) -> RequestMeta:
    """Extract the caller's origin for audit records.

    ip:      first X-Forwarded-For hop, else the socket peer.
    browser: User-Agent header.
    country: CF-IPCountry header (set by Cloudflare), else "XX".
    """
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else "unknown"
    return RequestMeta(
        ip=ip or "unknown",
        browser=request.headers.get("User-Agent", "unknown")[:255],
        country=request.headers.get("CF-IPCountry", "XX")[:8],
    )
