from .errors import ApiError, RateLimited, NotAuthorizedError, NotFoundError, is_retryable
from .api_client import ChatApiClient
from .timeline import MessageTimeline
from .poller import MessagePoller
from .session import ChatSession
