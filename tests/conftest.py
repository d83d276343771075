"""Shared fixtures for the version store tests.

Every test gets a fresh in-memory SQLite database built from the ORM
metadata, plus a deterministic clock so that commit hashes are stable.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

from definy_core.branches import BranchRegistry
from definy_core.graph.commit_graph import CommitGraph
from definy_core.projects import ProjectDirectory
from definy_core.state.sqlite_adapter import create_local_tables, get_local_engine


class FakeClock:
    """Returns a strictly increasing UTC timestamp, one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(seconds=1)
        return current


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with all tables created."""
    engine = get_local_engine(":memory:")
    await create_local_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def graph(session, clock) -> CommitGraph:
    return CommitGraph(session, clock=clock)


@pytest.fixture
def registry(session, graph, clock) -> BranchRegistry:
    return BranchRegistry(session, graph=graph, clock=clock)


@pytest.fixture
def directory(session, graph, clock) -> ProjectDirectory:
    return ProjectDirectory(session, graph=graph, clock=clock)
