from .routers import AuthAPI, MessageAPI, ConversationAPI, UserAPI
from .rate_limit import RateLimiter, RateLimitGuard
