"""
Shared-token authentication for the NoteDB API.

The token lives in NOTEDB_API_TOKEN. Clients send it as
``Authorization: Bearer <token>`` or, for tools that cannot set the
Authorization header (Cloudflare Access sits in front of some deployments),
as ``X-API-Token``. With no token configured every request is accepted and
a warning is logged once per path.

Usage:
    @app.get("/tables", dependencies=[Depends(require_auth)])
"""

import logging
import os
import secrets

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)

TOKEN_ENV = "NOTEDB_API_TOKEN"
ALT_HEADER = "X-API-Token"
AUTH_DISABLED = "auth_disabled"

bearer_scheme = HTTPBearer(auto_error=False)
_warned_paths: set[str] = set()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


async def require_auth(
    request: Request, credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)
) -> str:
    """Accept the request if it carries the configured token. Raises 401 otherwise."""
    expected = os.environ.get(TOKEN_ENV)
    path = request.url.path
    if not expected:
        if path not in _warned_paths:
            _warned_paths.add(path)
            logger.warning("%s is not set; %s is unauthenticated", TOKEN_ENV, path)
        return AUTH_DISABLED

    supplied = credentials.credentials if credentials else request.headers.get(ALT_HEADER)
    if not supplied:
        logger.info("Rejected %s: no token", path)
        raise _unauthorized(f"Missing token. Send 'Authorization: Bearer <token>' or '{ALT_HEADER}'.")
    if not secrets.compare_digest(supplied.encode(), expected.encode()):
        logger.warning("Rejected %s: wrong token", path)
        raise _unauthorized("Invalid token.")
    return supplied
