"""Composition root and shared FastAPI dependencies.

build_container() wires one instance of every component for the process:
backend (chosen by Settings), GameStore, SessionService, RateLimiter and
CsrfTokenStore. create_app() stores it on app.state.container; handlers
reach it only through the get_* dependencies below, never through
module-level singletons. Tests build fresh containers to avoid state
leaking between them.

Trust-boundary dependencies, in the order a mutating route applies them:
    enforce_rate_limit -> require_csrf -> require_session

Tier 3 orchestration module: imports from hooks/*, services/*, security/*,
config, errors and schemas.

Usage:
    from roomstate.api.deps import enforce_rate_limit, require_csrf, require_session

    @router.post("/thing", dependencies=[Depends(enforce_rate_limit), Depends(require_csrf)])
    async def do_thing(session: AuthenticatedSession = Depends(require_session)): ...
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from fastapi import Depends, Header, Request, Response

from roomstate.config import Settings
from roomstate.errors import CsrfRejected, RateLimited, Unauthorized
from roomstate.hooks.credentials import PasslibCredentialVerifier
from roomstate.hooks.interfaces import Backend
from roomstate.hooks.memory import MemoryBackend
from roomstate.hooks.relational import RelationalBackend
from roomstate.schemas import PublicUser
from roomstate.security.csrf import CsrfTokenStore
from roomstate.security.ratelimit import RateLimiter, RateLimitInfo
from roomstate.services.accounts import SessionService
from roomstate.services.games import GameStore

logger = logging.getLogger("roomstate")

SESSION_COOKIE = "session"
CSRF_HEADER = "X-CSRF-Token"


# ---------------------------------------------------------------------------
# Composition root
# ---------------------------------------------------------------------------


@dataclass
class Container:
    """Every per-process component, built once and injected everywhere."""

    settings: Settings
    backend: Backend
    games: GameStore
    accounts: SessionService
    rate_limiter: RateLimiter
    csrf: CsrfTokenStore


def build_backend(settings: Settings) -> Backend:
    """Selects and constructs the storage backend named in settings.

    Raises:
        ValueError: If settings.storage_backend is not recognized.
    """
    session_ttl = timedelta(days=settings.session_ttl_days)

    if settings.storage_backend == "memory":
        logger.info("Using in-memory storage")
        return MemoryBackend(
            session_ttl=session_ttl,
            cleanup_interval=timedelta(seconds=settings.cleanup_interval_seconds),
        )

    if settings.storage_backend == "relational":
        logger.info("Using relational storage")
        return RelationalBackend(
            settings.database_url,
            session_ttl=session_ttl,
            operation_timeout=settings.backend_timeout_seconds,
        )

    raise ValueError(
        f"Unknown storage backend: {settings.storage_backend!r}. "
        f"Expected 'memory' or 'relational'."
    )


def build_container(settings: Settings, backend: Backend | None = None) -> Container:
    """Wires all components. Pass backend to reuse one (tests, shared pools)."""
    backend = backend if backend is not None else build_backend(settings)
    return Container(
        settings=settings,
        backend=backend,
        games=GameStore(backend, game_ttl=timedelta(hours=settings.game_ttl_hours)),
        accounts=SessionService(
            backend, PasslibCredentialVerifier(rounds=settings.password_hash_rounds)
        ),
        rate_limiter=RateLimiter(
            settings.rate_limit_max_requests,
            settings.rate_limit_window_ms,
            cleanup_interval_ms=settings.cleanup_interval_seconds * 1000,
        ),
        csrf=CsrfTokenStore(
            timedelta(seconds=settings.csrf_ttl_seconds),
            cleanup_interval=timedelta(seconds=settings.cleanup_interval_seconds),
        ),
    )


# ---------------------------------------------------------------------------
# Dependency providers
# ---------------------------------------------------------------------------


def get_container(request: Request) -> Container:
    """Returns the container created by create_app()."""
    return request.app.state.container


def get_accounts(container: Container = Depends(get_container)) -> SessionService:
    return container.accounts


# ---------------------------------------------------------------------------
# Trust boundary
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthenticatedSession:
    token: str
    user: PublicUser


def client_identifier(request: Request) -> str:
    """First X-Forwarded-For hop, else X-Real-IP, else "unknown"."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return "unknown"


async def enforce_rate_limit(
    request: Request,
    response: Response,
    container: Container = Depends(get_container),
) -> RateLimitInfo:
    """Counts the request against the caller's window.

    Raises:
        RateLimited: Window exhausted. Carries retry_after in seconds.
    """
    info = container.rate_limiter.check(client_identifier(request))
    if not info.allowed:
        raise RateLimited(info.retry_after or 1)
    response.headers.update(info.headers())
    return info


def session_token(
    request: Request,
    authorization: str | None = Header(default=None),
) -> str | None:
    """Reads the session token from a Bearer header, falling back to the cookie."""
    if authorization:
        parts = authorization.split(" ", maxsplit=1)
        if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1].strip():
            return parts[1].strip()
    return request.cookies.get(SESSION_COOKIE) or None


async def require_csrf(
    token: str | None = Depends(session_token),
    x_csrf_token: str | None = Header(default=None),
    container: Container = Depends(get_container),
) -> None:
    """Rejects state-changing requests without a CSRF token for this session.

    Raises:
        CsrfRejected: Token missing, expired, or issued to another session.
    """
    if not x_csrf_token:
        raise CsrfRejected("CSRF token required.")
    if token is None or not container.csrf.validate(token, x_csrf_token):
        raise CsrfRejected()


async def require_session(
    token: str | None = Depends(session_token),
    accounts: SessionService = Depends(get_accounts),
) -> AuthenticatedSession:
    """Resolves the caller's live session.

    Raises:
        Unauthorized: No token, or the session is unknown or expired.
    """
    if not token:
        raise Unauthorized("Missing session.")
    user = await accounts.get_current_user(token)
    if user is None:
        raise Unauthorized()
    return AuthenticatedSession(token=token, user=user)
