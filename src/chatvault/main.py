import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dishka import AsyncContainer, make_async_container
from dishka.integrations.fastapi import setup_dishka
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from redis import asyncio as aioredis
import uvicorn

from chatvault.config import Config, load_config
from chatvault.core.db_manager import DatabaseManager
from chatvault.encryption import KeyService
from chatvault.providers.dishka_app import AdaptersProvider, GatewaysProvider, ServicesProvider

from chatvault.services import AuthAPI, MessageAPI, ConversationAPI, UserAPI, RateLimitGuard
from chatvault.services.errors import register_exception_handlers
from chatvault.services.models import HealthResponse


async def release_resources(container: AsyncContainer):
    """
    Disposes the engine and the redis pool inside the loop that used them, then closes
    the container.
    """
    db_manager = await container.get(DatabaseManager)
    await db_manager.close()
    redis = await container.get(aioredis.Redis)
    await redis.aclose()
    await container.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    db_manager = await app.state.dishka_container.get(DatabaseManager)
    await db_manager.create_tables()
    yield
    await release_resources(app.state.dishka_container)


async def create_app(config: Config | None = None) -> FastAPI:
    container = make_async_container(
        AdaptersProvider(config),
        GatewaysProvider(),
        ServicesProvider(),
    )
    cfg = await container.get(Config)
    logger = await container.get(logging.Logger)

    # refuse to start without a usable master key
    await container.get(KeyService)

    app = FastAPI(title="chatvault", lifespan=lifespan)
    setup_dishka(container, app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[cfg.server.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app, logger)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health():
        return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc).isoformat())

    rate_limits = await container.get(RateLimitGuard)
    auth_api = await container.get(AuthAPI)
    user_api = await container.get(UserAPI)
    conversation_api = await container.get(ConversationAPI)
    message_api = await container.get(MessageAPI)

    for api in (auth_api, user_api, conversation_api, message_api):
        app.include_router(api.get_router(), dependencies=[Depends(rate_limits.general)])

    return app


def main():
    config = load_config(".env")
    logging.basicConfig(
        level=config.server.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    app = asyncio.run(create_app(config))
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_level=config.server.log_level.lower())


if __name__ == "__main__":
    main()
