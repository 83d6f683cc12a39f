import base64
import logging

import httpx
import pytest

from chatvault.config import (
    Config, EncryptionConfig, JWTConfig, DBConfig, RedisConfig, RateLimitConfig, ServerConfig
)
from chatvault.core.db_manager import DatabaseManager
from chatvault.core.gateways import UserGateway, ConversationGateway, MessageGateway
from chatvault.encryption import KeyService
from chatvault.main import create_app, release_resources

MASTER_KEY = base64.b64encode(bytes(range(32))).decode("ascii")
JWT_SECRET = "test-jwt-secret"


@pytest.fixture
def logger():
    return logging.getLogger("chatvault.tests")


@pytest.fixture
def config(tmp_path):
    """Config backed by a throwaway SQLite file, rate limiting off."""
    return Config(
        encryption=EncryptionConfig(master_key=MASTER_KEY),
        jwt=JWTConfig(secret_key=JWT_SECRET),
        db=DBConfig(path=str(tmp_path / "chatvault.db")),
        redis=RedisConfig(),
        rate_limit=RateLimitConfig(enabled=False),
        server=ServerConfig(),
    )


@pytest.fixture
def key_service(logger):
    return KeyService(MASTER_KEY, logger=logger)


@pytest.fixture
async def db_manager(config):
    manager = DatabaseManager(config)
    await manager.create_tables()
    yield manager
    await manager.close()


@pytest.fixture
def user_gateway(db_manager, logger):
    return UserGateway(db_manager, logger)


@pytest.fixture
def conversation_gateway(db_manager, logger):
    return ConversationGateway(db_manager, logger)


@pytest.fixture
def message_gateway(db_manager, key_service, logger):
    return MessageGateway(db_manager, key_service, logger)


@pytest.fixture
async def direct_conversation(user_gateway, conversation_gateway):
    """alice and bob share conv-1; carol exists but is not a participant."""
    for user_id in ("alice", "bob", "carol"):
        await user_gateway.create_user(user_id, user_id, display_name=user_id.title())
    return await conversation_gateway.create_conversation("conv-1", "alice", participant_ids=["bob"])


@pytest.fixture
async def app(config):
    app = await create_app(config)
    container = app.state.dishka_container
    # ASGITransport does not run the lifespan
    db_manager = await container.get(DatabaseManager)
    await db_manager.create_tables()
    yield app
    await release_resources(container)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
