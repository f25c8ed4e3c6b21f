"""Relational backend: SQLAlchemy (async) storage for rooms, users and sessions.

Works against any async SQLAlchemy dialect. Production runs PostgreSQL via
asyncpg; tests and single-node deployments run SQLite via aiosqlite.

Expiry is a predicate, not a sweep: every read filters on
expires_at > now, so an expired row is invisible whether or not the reaper
(purge_expired, driven by roomstate.reaper) has deleted it yet.

Per-room atomicity comes from the database. game_update reads the row
with SELECT ... FOR UPDATE, merges the supplied fields in Python, and
writes the whole merged document back in the same transaction. SQLite
ignores FOR UPDATE, so SQLite engines begin every transaction with
BEGIN IMMEDIATE to serialize writers instead. In-memory SQLite has a
single shared connection, so calls on such an engine queue on one
asyncio.Lock and never interleave their transactions.

Every call runs under asyncio.timeout(operation_timeout). Timeouts and
driver errors surface as BackendUnavailable. Unique-key violations surface
as Conflict.

Tier 2 service module: imports from roomstate.hooks.tables,
roomstate.hooks.interfaces (Tier 1), roomstate.schemas, roomstate.constants
and roomstate.errors (Tier 1).

Usage:
    from roomstate.hooks.relational import RelationalBackend

    backend = RelationalBackend("sqlite+aiosqlite:///./roomstate.db")
    await backend.init_schema()
    await backend.game_create("ABCD-12", room)
"""

import asyncio
import logging
import secrets
import time
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, event, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from roomstate.constants import SESSION_TTL
from roomstate.errors import BackendUnavailable, Conflict
from roomstate.hooks.interfaces import GameListener, Unsubscribe
from roomstate.hooks.tables import Base, GamePlayerRow, GameRow, SessionRow, UserRow
from roomstate.schemas import GameRoom, GameStep, User, utcnow

logger = logging.getLogger("roomstate")


def _to_db(value: datetime) -> datetime:
    """Aware datetime -> naive UTC for storage."""
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


def _user_from_row(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        created_at=_from_db(row.created_at),
    )


def create_relational_engine(database_url: str) -> AsyncEngine:
    """Creates an async engine, with SQLite-specific transaction handling.

    For SQLite, aiosqlite's implicit BEGIN is disabled and every transaction
    starts with BEGIN IMMEDIATE, taking the write lock up front so that
    concurrent read-modify-write transactions queue on the busy timeout
    instead of deadlocking. In-memory SQLite shares a single connection.
    """
    if not database_url.startswith("sqlite"):
        return create_async_engine(database_url, pool_pre_ping=True)

    kwargs: dict[str, Any] = {"connect_args": {"timeout": 30}}
    if ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite+aiosqlite:"):
        kwargs["poolclass"] = StaticPool
    engine = create_async_engine(database_url, **kwargs)

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class RelationalBackend:
    """SQLAlchemy-backed Backend.

    Subscriptions are not pushed: game_subscribe returns a no-op and
    consumers poll game_get. Everything else matches MemoryBackend exactly,
    which the contract suite verifies.
    """

    def __init__(
        self,
        database_url: str | None = None,
        *,
        engine: AsyncEngine | None = None,
        session_ttl: timedelta = SESSION_TTL,
        operation_timeout: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialises the backend. Does not touch the database.

        Args:
            database_url: SQLAlchemy async URL. Ignored if engine is given.
            engine: A pre-built AsyncEngine (shared pools, tests).
            session_ttl: Default lifetime for new auth sessions.
            operation_timeout: Seconds before a call fails with BackendUnavailable.
            clock: Returns the current aware UTC datetime. Injectable for tests.

        Raises:
            ValueError: If neither database_url nor engine is provided.
        """
        if engine is None:
            if not database_url:
                raise ValueError("RelationalBackend needs a database_url or an engine.")
            engine = create_relational_engine(database_url)
        self._engine = engine
        self._serial = asyncio.Lock() if isinstance(engine.pool, StaticPool) else None
        self._sessionmaker = async_sessionmaker(engine, expire_on_commit=False)
        self._session_ttl = session_ttl
        self._timeout = operation_timeout
        self._clock = clock

    async def init_schema(self) -> None:
        """Creates all tables if they don't exist."""
        async with self._guard("init_schema"):
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        logger.info("Relational schema ready (%s)", self._engine.dialect.name)

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            async with asyncio.timeout(self._timeout):
                if self._serial is None:
                    yield
                else:
                    async with self._serial:
                        yield
        except TimeoutError as exc:
            logger.warning(
                "Backend %s timed out after %.1fs", operation, self._timeout
            )
            raise BackendUnavailable() from exc
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Backend %s failed", operation, exc_info=True)
            raise BackendUnavailable() from exc

    def _session(self) -> AsyncSession:
        return self._sessionmaker()

    def _now(self) -> datetime:
        return _to_db(self._clock())

    # -- Games -------------------------------------------------------------

    async def game_create(self, room_code: str, room: GameRoom) -> GameRoom:
        now = self._now()
        async with self._guard("game_create"):
            try:
                async with self._session() as session, session.begin():
                    existing = await session.get(GameRow, room_code, with_for_update=True)
                    if existing is not None:
                        if existing.expires_at > now:
                            raise Conflict(f"Room {room_code} already exists.")
                        await session.execute(
                            delete(GamePlayerRow).where(GamePlayerRow.room_code == room_code)
                        )
                        await session.delete(existing)
                        await session.flush()
                    session.add(
                        GameRow(
                            room_code=room_code,
                            state=room.model_dump(mode="json"),
                            step=room.step,
                            created_at=_to_db(room.created_at),
                            updated_at=now,
                            expires_at=_to_db(room.expires_at),
                        )
                    )
                    await session.flush()
                    session.add_all(
                        GamePlayerRow(room_code=room_code, user_id=player_id)
                        for player_id in dict.fromkeys(room.player_ids)
                    )
            except IntegrityError as exc:
                raise Conflict(f"Room {room_code} already exists.") from exc
        return room.model_copy(deep=True)

    async def game_get(self, room_code: str) -> GameRoom | None:
        now = self._now()
        async with self._guard("game_get"):
            async with self._session() as session:
                state = await session.scalar(
                    select(GameRow.state).where(
                        GameRow.room_code == room_code, GameRow.expires_at > now
                    )
                )
        return GameRoom.model_validate(state) if state is not None else None

    async def game_update(
        self, room_code: str, fields: dict[str, Any]
    ) -> GameRoom | None:
        now = self._now()
        async with self._guard("game_update"):
            async with self._session() as session, session.begin():
                row = await session.scalar(
                    select(GameRow)
                    .where(GameRow.room_code == room_code, GameRow.expires_at > now)
                    .with_for_update()
                )
                if row is None:
                    return None
                current = GameRoom.model_validate(row.state)
                merged = GameRoom.model_validate({**current.model_dump(), **fields})
                row.state = merged.model_dump(mode="json")
                row.step = merged.step
                row.expires_at = _to_db(merged.expires_at)
                row.updated_at = now
                if merged.player_ids != current.player_ids:
                    await session.execute(
                        delete(GamePlayerRow).where(GamePlayerRow.room_code == room_code)
                    )
                    session.add_all(
                        GamePlayerRow(room_code=room_code, user_id=player_id)
                        for player_id in dict.fromkeys(merged.player_ids)
                    )
        return merged

    async def game_delete(self, room_code: str) -> None:
        async with self._guard("game_delete"):
            async with self._session() as session, session.begin():
                await session.execute(
                    delete(GamePlayerRow).where(GamePlayerRow.room_code == room_code)
                )
                await session.execute(delete(GameRow).where(GameRow.room_code == room_code))

    async def game_list(
        self, user_id: str, step: GameStep | None = None
    ) -> list[GameRoom]:
        now = self._now()
        query = (
            select(GameRow.state)
            .join(GamePlayerRow, GamePlayerRow.room_code == GameRow.room_code)
            .where(GamePlayerRow.user_id == user_id, GameRow.expires_at > now)
            .order_by(GameRow.room_code)
        )
        if step is not None:
            query = query.where(GameRow.step == step)
        async with self._guard("game_list"):
            async with self._session() as session:
                states = (await session.scalars(query)).all()
        return [GameRoom.model_validate(state) for state in states]

    def game_subscribe(self, room_code: str, callback: GameListener) -> Unsubscribe:
        # No push channel: consumers poll game_get.
        return lambda: None

    # -- Users -------------------------------------------------------------

    async def user_create(self, email: str, password_hash: str) -> User:
        row = UserRow(
            id=str(uuid.uuid4()),
            email=email,
            password_hash=password_hash,
            created_at=self._now(),
        )
        async with self._guard("user_create"):
            try:
                async with self._session() as session, session.begin():
                    session.add(row)
            except IntegrityError as exc:
                raise Conflict("User already exists.") from exc
        return _user_from_row(row)

    async def user_find_by_email(self, email: str) -> User | None:
        async with self._guard("user_find_by_email"):
            async with self._session() as session:
                row = await session.scalar(select(UserRow).where(UserRow.email == email))
        return _user_from_row(row) if row is not None else None

    async def user_find_by_id(self, user_id: str) -> User | None:
        async with self._guard("user_find_by_id"):
            async with self._session() as session:
                row = await session.get(UserRow, user_id)
        return _user_from_row(row) if row is not None else None

    # -- Sessions ----------------------------------------------------------

    async def session_create(
        self, user_id: str, ttl: timedelta | None = None
    ) -> str:
        now = self._now()
        token = secrets.token_urlsafe(32)
        lifetime = ttl if ttl is not None else self._session_ttl
        async with self._guard("session_create"):
            async with self._session() as session, session.begin():
                session.add(
                    SessionRow(
                        token=token,
                        user_id=user_id,
                        created_at=now,
                        expires_at=now + lifetime,
                    )
                )
        return token

    async def session_validate(self, token: str) -> str | None:
        now = self._now()
        async with self._guard("session_validate"):
            async with self._session() as session:
                return await session.scalar(
                    select(SessionRow.user_id).where(
                        SessionRow.token == token, SessionRow.expires_at > now
                    )
                )

    async def session_delete(self, token: str) -> None:
        async with self._guard("session_delete"):
            async with self._session() as session, session.begin():
                await session.execute(delete(SessionRow).where(SessionRow.token == token))

    # -- Maintenance -------------------------------------------------------

    async def purge_expired(self) -> int:
        """Deletes every row past expiry. Called by the reaper, never by reads."""
        now = self._now()
        expired_rooms = select(GameRow.room_code).where(GameRow.expires_at <= now)
        async with self._guard("purge_expired"):
            async with self._session() as session, session.begin():
                await session.execute(
                    delete(GamePlayerRow).where(GamePlayerRow.room_code.in_(expired_rooms))
                )
                games = await session.execute(delete(GameRow).where(GameRow.expires_at <= now))
                sessions = await session.execute(
                    delete(SessionRow).where(SessionRow.expires_at <= now)
                )
        return (games.rowcount or 0) + (sessions.rowcount or 0)

    async def health(self) -> dict[str, Any]:
        """Runs SELECT 1 and reports latency. Never raises."""
        start = time.monotonic()
        try:
            async with self._guard("health"):
                async with self._engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
        except BackendUnavailable as exc:
            return {
                "status": "unhealthy",
                "backend": "relational",
                "dialect": self._engine.dialect.name,
                "error": type(exc.__cause__).__name__,
            }
        return {
            "status": "healthy",
            "backend": "relational",
            "dialect": self._engine.dialect.name,
            "latency_ms": round((time.monotonic() - start) * 1000, 1),
        }

    async def close(self) -> None:
        await self._engine.dispose()
