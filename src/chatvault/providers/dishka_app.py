from dishka import Provider, Scope, provide
from redis import asyncio as aioredis
import logging

from chatvault.config import Config, load_config
from chatvault.core.db_manager import DatabaseManager
from chatvault.core.gateways import UserGateway, ConversationGateway, MessageGateway
from chatvault.encryption import KeyService

from chatvault.services import AuthAPI, MessageAPI, ConversationAPI, UserAPI, RateLimiter, RateLimitGuard


class AdaptersProvider(Provider):
    def __init__(self, config: Config | None = None):
        super().__init__()
        self._config = config

    @provide(scope=Scope.APP)
    def get_config(self) -> Config:
        return self._config or load_config(".env")

    @provide(scope=Scope.APP)
    def get_logger(self) -> logging.Logger:
        return logging.getLogger("chatvault")

    # closed by release_resources in the app lifespan, not by the container
    @provide(scope=Scope.APP)
    def get_redis(self, config: Config) -> aioredis.Redis:
        return aioredis.Redis(host=config.redis.host, port=config.redis.port, db=0)

    @provide(scope=Scope.APP)
    def get_db_manager(self, config: Config) -> DatabaseManager:
        # engine is created lazily inside the serving event loop
        return DatabaseManager(config)

    @provide(scope=Scope.APP)
    def get_key_service(self, config: Config, logger: logging.Logger) -> KeyService:
        return KeyService(
            master_key=config.encryption.master_key,
            allow_insecure_fallback=config.encryption.allow_insecure_fallback,
            logger=logger
        )


class GatewaysProvider(Provider):
    @provide(scope=Scope.REQUEST)
    def get_user_gateway(
            self,
            db_manager: DatabaseManager,
            logger: logging.Logger
    ) -> UserGateway:
        return UserGateway(db_manager, logger)

    @provide(scope=Scope.REQUEST)
    def get_conversation_gateway(
            self,
            db_manager: DatabaseManager,
            logger: logging.Logger
    ) -> ConversationGateway:
        return ConversationGateway(db_manager, logger)

    @provide(scope=Scope.REQUEST)
    def get_message_gateway(
            self,
            db_manager: DatabaseManager,
            key_service: KeyService,
            logger: logging.Logger
    ) -> MessageGateway:
        return MessageGateway(db_manager, key_service, logger)


class ServicesProvider(Provider):
    @provide(scope=Scope.APP)
    def get_rate_limit_guard(
            self,
            config: Config,
            redis: aioredis.Redis,
            logger: logging.Logger
    ) -> RateLimitGuard:
        return RateLimitGuard(
            limiter=RateLimiter(redis, logger),
            config=config.rate_limit,
            logger=logger
        )

    @provide(scope=Scope.APP)
    def get_auth_api(
        self,
        config: Config,
        logger: logging.Logger
    ) -> AuthAPI:
        return AuthAPI(
            secret_key=config.jwt.secret_key,
            logger=logger,
            expire_minutes=config.jwt.expire_minutes
        )

    @provide(scope=Scope.APP)
    def get_user_api(self, logger: logging.Logger) -> UserAPI:
        return UserAPI(logger=logger)

    @provide(scope=Scope.APP)
    def get_conversation_api(
            self,
            logger: logging.Logger,
            auth_api: AuthAPI
    ) -> ConversationAPI:
        return ConversationAPI(
            logger=logger,
            auth_api=auth_api
        )

    @provide(scope=Scope.APP)
    def get_message_api(
            self,
            logger: logging.Logger,
            auth_api: AuthAPI,
            rate_limits: RateLimitGuard
    ) -> MessageAPI:
        return MessageAPI(
            logger=logger,
            auth_api=auth_api,
            rate_limits=rate_limits
        )
