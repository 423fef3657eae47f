"""API test fixtures: the app wired to the per-test SQLite database."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from payroll_reconciler.api.app import create_app
from payroll_reconciler.api.dependencies import get_sessionmaker
from payroll_reconciler.config import ImportConfig, PayrollConfig, Settings, get_settings


@pytest.fixture
def settings(engine) -> Settings:
    return Settings(
        database_url=str(engine.url),
        app_version="test",
        host="127.0.0.1",
        port=8000,
        debug=True,
        log_level="DEBUG",
        payroll=PayrollConfig(),
        imports=ImportConfig(stats_batch_size=1),
    )


@pytest.fixture
async def client(session_factory, settings) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app; lifespan is not run."""
    app = create_app()
    app.dependency_overrides[get_sessionmaker] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: settings

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client


@pytest.fixture
def tenant_headers(tenant_id) -> dict[str, str]:
    return {"X-Tenant-ID": str(tenant_id)}
