"""Session-boundary routes: CSRF token issuance and sign-out.

These are the routes that own the CSRF handshake. A page fetches a token
with GET /csrf (returned in the X-CSRF-Token header), then sends it back
on every mutating request. Sign-out is the reference mutating route:
rate limit, then CSRF, then session.
"""

from fastapi import APIRouter, Depends, Response

from roomstate.api.deps import (
    CSRF_HEADER,
    SESSION_COOKIE,
    AuthenticatedSession,
    Container,
    enforce_rate_limit,
    get_container,
    require_csrf,
    require_session,
)
from roomstate.schemas import ApiResponse

router = APIRouter()


@router.get("/csrf")
async def issue_csrf_token(
    response: Response,
    session: AuthenticatedSession = Depends(require_session),
    container: Container = Depends(get_container),
) -> dict:
    token = container.csrf.issue(session.token)
    response.headers[CSRF_HEADER] = token
    return ApiResponse(ok=True, data={"csrf_token": token}).model_dump()


@router.post(
    "/auth/signout",
    dependencies=[Depends(enforce_rate_limit), Depends(require_csrf)],
)
async def sign_out(
    response: Response,
    session: AuthenticatedSession = Depends(require_session),
    container: Container = Depends(get_container),
) -> dict:
    await container.accounts.sign_out(session.token)
    container.csrf.revoke(session.token)
    response.delete_cookie(SESSION_COOKIE)
    return ApiResponse(ok=True, data={"signed_out": True}).model_dump()
