import asyncio

from redis import asyncio as aioredis

from chatvault.core.db_manager import DatabaseManager
from chatvault.main import create_app, lifespan, release_resources


async def test_lifespan_creates_tables_and_releases_resources(config, monkeypatch):
    app = await create_app(config)
    container = app.state.dishka_container
    db_manager = await container.get(DatabaseManager)
    redis = await container.get(aioredis.Redis)

    closed = []

    async def aclose():
        closed.append("redis")

    monkeypatch.setattr(redis, "aclose", aclose)

    async with lifespan(app):
        assert db_manager.engine is not None
        # nothing is torn down while the app is serving
        assert closed == []

    assert db_manager.engine is None
    assert closed == ["redis"]


def test_redis_survives_the_startup_event_loop(config, monkeypatch):
    closed = []

    async def aclose(self):
        closed.append(self)

    monkeypatch.setattr(aioredis.Redis, "aclose", aclose)

    # main() builds the app in one loop and serves it in another
    app = asyncio.run(create_app(config))
    assert closed == []

    asyncio.run(release_resources(app.state.dishka_container))
    assert len(closed) == 1
