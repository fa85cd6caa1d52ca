"""pytest fixtures for Portraitly tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- session_factory: Function-scoped SQLite (aiosqlite) session factory with tables created
- session: Function-scoped database session
- uow_factory: Function-scoped UnitOfWork factory
- postgres_container: Session-scoped testcontainer PostgreSQL instance with migrations
  applied (tests using it are skipped when Docker is unavailable)
"""

import os
import subprocess
import sys
from pathlib import Path
from typing import AsyncGenerator

# Settings validation is relaxed for tests; must be set before the app is imported
os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from portraitly import models  # noqa: E402, F401  # registers tables on SQLModel.metadata
from portraitly.core.database import setup_db_session  # noqa: E402
from portraitly.uow import create_uow_factory  # noqa: E402

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def docker_available() -> bool:
    try:
        import docker

        docker.from_env().ping()
        return True
    except Exception:
        return False


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests.

    Autouse fixture ensures TZ=UTC is set before any test runs.
    """
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path):
    """Provide a session factory over a fresh SQLite database file.

    A file (not :memory:) so that separate sessions see each other's commits.
    """
    factory = setup_db_session(f"sqlite+aiosqlite:///{tmp_path / 'portraitly.db'}")
    engine = factory.kw["bind"]
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield factory

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory over the SQLite database."""
    return create_uow_factory(session_factory)


@pytest.fixture(scope="session")
def postgres_container():
    """Provide session-scoped PostgreSQL container with migrations applied.

    Container starts once per test session and is reused across all tests.
    Migrations are applied using subprocess to avoid asyncio event loop conflicts.
    """
    if not docker_available():
        pytest.skip("Docker is not available for PostgreSQL testcontainer")

    from testcontainers.postgres import PostgresContainer

    with PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="test_portraitly",
    ) as container:
        db_url = container.get_connection_url(driver="psycopg")

        # Set DATABASE_URL environment variable for alembic env.py
        env = os.environ.copy()
        env["DATABASE_URL"] = db_url

        subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
            env=env,
            cwd=PROJECT_ROOT,
        )

        yield container
