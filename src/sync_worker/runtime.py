"""Event-loop bootstrap for async sync code running inside Celery tasks."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from aspos_sync.infrastructure.database.connection import (
    create_session_factory,
    get_async_engine,
    set_session_factory,
)

T = TypeVar("T")


@asynccontextmanager
async def worker_database() -> AsyncIterator[None]:
    """Bind a fresh engine to the current event loop and dispose of it afterwards."""
    engine = get_async_engine()
    set_session_factory(create_session_factory(engine))
    try:
        yield
    finally:
        set_session_factory(None)
        await engine.dispose()


def run_async(func: Callable[[], Awaitable[T]]) -> T:
    """Run an async job to completion on a new event loop."""

    async def runner() -> T:
        async with worker_database():
            return await func()

    return asyncio.run(runner())
