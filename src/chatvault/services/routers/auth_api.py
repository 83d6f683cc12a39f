from fastapi import status, HTTPException, Depends, APIRouter, Header, Query
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from datetime import datetime, timedelta, timezone

from dishka import FromDishka
from dishka.integrations.fastapi import inject

import logging

from chatvault.core.gateways import UserGateway
from ..models.user_api_models import UserResponse


class AuthAPI:
    """
    Resolves the caller's identity.

    A bearer JWT is honoured when a secret is configured; otherwise the caller id comes from
    the trusted X-User-Id header (or the userId query parameter). Tokens can be minted with
    create_access_token, but no public endpoint issues them.

    Attributes:
        SECRET_KEY (str | None): Secret key for JWT token signing, None disables JWT
        ALGORITHM (str): JWT signing algorithm (HS256)
        ACCESS_TOKEN_EXPIRE_MINUTES (int): JWT token expiration time in minutes
        bearer_scheme (HTTPBearer): optional bearer credentials
        current_user: FastAPI dependency returning the caller id
    """
    def __init__(
            self,
            secret_key: str | None,
            logger: logging.Logger,
            expire_minutes: int = 480
    ):
        self.SECRET_KEY = secret_key
        self.ALGORITHM = "HS256"
        self.ACCESS_TOKEN_EXPIRE_MINUTES: int = expire_minutes
        self.logger = logger
        self.bearer_scheme = HTTPBearer(auto_error=False)
        self._auth_router = APIRouter(prefix="/auth", tags=["Authentication"])

        async def current_user(
                credentials: HTTPAuthorizationCredentials | None = Depends(self.bearer_scheme),
                x_user_id: str | None = Header(default=None),
                user_id: str | None = Query(default=None, alias="userId")
        ) -> str:
            token = credentials.credentials if credentials else None
            return await self.get_current_user(token, x_user_id or user_id)

        self.current_user = current_user
        self._register_endpoints()

    @property
    def jwt_enabled(self) -> bool:
        return bool(self.SECRET_KEY)

    def get_router(self) -> APIRouter:
        return self._auth_router

    def create_access_token(self, user_id: str, username: str | None = None) -> str:
        """
        Create JWT access token.
        Args:
            user_id: User ID placed in the "sub" claim
            username: optional username claim
        Returns:
            str: Encoded JWT access token
        Raises:
            RuntimeError: If no JWT secret is configured
        """
        if not self.jwt_enabled:
            raise RuntimeError("JWT_SECRET is not configured")

        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "exp": now + timedelta(minutes=self.ACCESS_TOKEN_EXPIRE_MINUTES),
            "iat": now,
            "type": "access",
        }
        if username:
            payload["username"] = username
        return jwt.encode(payload, self.SECRET_KEY, algorithm=self.ALGORITHM)

    def decode_token(self, token: str) -> str:
        try:
            payload = jwt.decode(token, self.SECRET_KEY, algorithms=[self.ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token expired"
            )
        except JWTError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            ) from e

        if payload.get("type") != "access" or not payload.get("sub"):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials"
            )
        return str(payload["sub"])

    async def get_current_user(self, token: str | None, trusted_user_id: str | None) -> str:
        """
        Args:
            token: bearer token, if one was sent
            trusted_user_id: caller id supplied by the trusted front (header or query)
        Returns:
            str: caller id
        Raises:
            HTTPException: 401 when no identity can be established
        """
        if token and self.jwt_enabled:
            return self.decode_token(token)

        if trusted_user_id:
            return trusted_user_id

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - no user identity provided"
        )

    def _register_endpoints(self):
        @self._auth_router.get("/session", response_model=UserResponse)
        @inject
        async def get_session(
                user_gateway: FromDishka[UserGateway],
                user_id: str = Depends(self.current_user)
        ):
            """
            Current caller's user record.
            Raises:
                HTTPException: If user is not found
            """
            user = await user_gateway.get_user_by_id(user_id)
            if not user:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="User not found"
                )
            return UserResponse.model_validate(user.model_dump())
