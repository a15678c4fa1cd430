import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from workproof.config import Settings
from workproof.db import create_engine, create_sessionmaker, init_models
from workproof.main import create_app

from .support import JWT_SECRET, WEBHOOK_SECRET, FakeProcessor


@pytest_asyncio.fixture
async def db(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_models(engine)
    factory = create_sessionmaker(engine)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def processor():
    return FakeProcessor()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        supabase_jwt_secret=JWT_SECRET,
        stripe_webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def client(settings, processor):
    app = create_app(settings, processor=processor)
    with TestClient(app) as c:
        yield c
