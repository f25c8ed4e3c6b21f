"""Fixtures for contract tests: one parameterized fixture for the Backend protocol.

The backend fixture yields a fresh implementation per test, once per param.
Every test in this directory runs against every registered backend, so a
behavioral difference between memory and relational storage shows up as a
failure on exactly one param.

TEAM: To test a new backend against the contracts:
    1. Add your param string (e.g., "postgres") to the params list.
    2. Add an elif branch that yields your implementation instance.
    3. Run: python -m pytest roomstate/tests/contracts/ -v
    All tests should pass. If any fail, your implementation doesn't satisfy
    the contract. Read the failing test's docstring for what's expected.

The relational param uses a file-backed SQLite database under tmp_path so
that concurrent transactions get real connections of their own.
"""

import pytest_asyncio

from roomstate.hooks.memory import MemoryBackend
from roomstate.hooks.relational import RelationalBackend


@pytest_asyncio.fixture(params=["memory", "relational"])
async def backend(request, tmp_path):
    """Yields a Backend implementation.

    TEAM: Add your backend here:
        @pytest_asyncio.fixture(params=["memory", "relational", "postgres"])
        async def backend(request, tmp_path):
            ...
            elif request.param == "postgres":
                store = RelationalBackend(test_dsn)
                await store.init_schema()
                yield store
                await store.close()
    """
    if request.param == "memory":
        store = MemoryBackend()
        yield store
        await store.close()
    elif request.param == "relational":
        store = RelationalBackend(f"sqlite+aiosqlite:///{tmp_path}/contract.db")
        await store.init_schema()
        yield store
        await store.close()
