from __future__ import annotations

import os
import tempfile

# The async engine is created when sfinsight.persistence.db is imported, so the
# test database has to be configured before any sfinsight module loads.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="sfinsight-tests-")
os.environ["DATABASE_URL"] = os.environ.get(
    "SFINSIGHT_TEST_DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB_DIR}/sfinsight.db"
)
os.environ["CREDENTIAL_SECRET"] = "test-credential-secret"
# Route every Salesforce call to the bundled sample org.
os.environ["DEMO_MODE"] = "true"

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from sfinsight.apps.api.deps import _auth_cache  # noqa: E402
from sfinsight.apps.api.main import create_app  # noqa: E402
from sfinsight.core.config import get_settings  # noqa: E402
from sfinsight.domain.models import Base  # noqa: E402
from sfinsight.persistence.db import engine  # noqa: E402


@pytest.fixture(autouse=True)
def reset_cached_state() -> None:
    # Settings and authenticated principals are cached process-wide.
    get_settings.cache_clear()
    _auth_cache.clear()
    yield
    get_settings.cache_clear()
    _auth_cache.clear()


@pytest.fixture
async def database() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Dispose so pooled connections never cross event loops between tests.
    await engine.dispose()


@pytest.fixture
async def api_client(database) -> AsyncClient:
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
