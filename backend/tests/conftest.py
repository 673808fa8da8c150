import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from logtree.config import Settings
from logtree.main import create_app
from logtree.nodes.aggregation import AggregationEngine
from logtree.nodes.store import MemoryNodeStore, SqlNodeStore


@pytest.fixture
def settings():
    return Settings(_env_file=None, NODE_STORE="memory", LOG_LEVEL="WARNING")


@pytest.fixture
def store():
    return MemoryNodeStore()


@pytest.fixture
def engine(store: MemoryNodeStore):
    return AggregationEngine(store)


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    store = SqlNodeStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await store.init()
    yield store
    await store.close()


@pytest.fixture
def app(settings: Settings):
    return create_app(settings)


@pytest_asyncio.fixture
async def client(app):
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            yield c
