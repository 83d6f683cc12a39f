from dataclasses import dataclass, field
from environs import Env


@dataclass
class EncryptionConfig:
    master_key: str | None = None
    allow_insecure_fallback: bool = False


@dataclass
class JWTConfig:
    secret_key: str | None = None
    expire_minutes: int = 480


@dataclass
class DBConfig:
    """ PostgreSQL """
    host: str | None = None
    port: int | None = None
    name: str | None = None
    user: str | None = None
    password: str | None = None

    """ SQLite """
    path: str | None = None

    echo: bool = False


@dataclass
class RedisConfig:
    host: str | None = 'localhost'
    port: int | None = 6379


@dataclass
class RateLimitConfig:
    enabled: bool = True
    max_requests: int = 200
    window_seconds: int = 15 * 60
    message_max_requests: int = 30
    message_window_seconds: int = 60


@dataclass
class ServerConfig:
    host: str = '0.0.0.0'
    port: int = 8000
    cors_origin: str = 'http://localhost:5173'
    log_level: str = 'INFO'


@dataclass
class Config:
    """ Config """
    encryption: EncryptionConfig
    jwt: JWTConfig
    db: DBConfig
    redis: RedisConfig
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def load_config(path: str | None) -> Config:
    env = Env()
    env.read_env(path)

    return Config(
        encryption=EncryptionConfig(
            master_key=env('MASTER_ENCRYPTION_KEY', None) or None,
            allow_insecure_fallback=env.bool('ALLOW_INSECURE_KEY_FALLBACK', False),
        ),
        jwt=JWTConfig(
            secret_key=env('JWT_SECRET', None) or None,
            expire_minutes=env.int('JWT_EXPIRE_MINUTES', 480),
        ),
        db=DBConfig(
            host=env('DB_HOST', None) or None,
            port=env.int('DB_PORT', None),
            name=env('DB_NAME', None),
            user=env('DB_USER', None),
            password=env('DB_PASSWORD', None),
            path=env('DB_PATH', 'data/chatvault.db'),
            echo=env.bool('DB_ECHO', False),
        ),
        redis=RedisConfig(
            host=env('REDIS_HOST', 'localhost'),
            port=env.int('REDIS_PORT', 6379)
        ),
        rate_limit=RateLimitConfig(
            enabled=env.bool('RATE_LIMIT_ENABLED', True),
            max_requests=env.int('RATE_LIMIT_MAX', 200),
            window_seconds=env.int('RATE_LIMIT_WINDOW_SECONDS', 15 * 60),
            message_max_requests=env.int('MESSAGE_RATE_LIMIT_MAX', 30),
            message_window_seconds=env.int('MESSAGE_RATE_LIMIT_WINDOW_SECONDS', 60),
        ),
        server=ServerConfig(
            host=env('HOST', '0.0.0.0'),
            port=env.int('PORT', 8000),
            cors_origin=env('CORS_ORIGIN', 'http://localhost:5173'),
            log_level=env('LOG_LEVEL', 'INFO'),
        ),
    )
