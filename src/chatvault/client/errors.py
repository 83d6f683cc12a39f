import httpx


class ApiError(Exception):
    """Non-2xx answer from the chat API, carrying the server's {"error"} text."""

    def __init__(self, status: int, message: str):
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.message = message


class RateLimited(ApiError):
    def __init__(self, status: int, message: str, retry_after: int | None = None):
        super().__init__(status, message)
        self.retry_after = retry_after


class NotAuthorizedError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


def error_from_response(response: httpx.Response) -> ApiError:
    try:
        message = response.json().get("error") or response.reason_phrase
    except ValueError:
        message = f"HTTP {response.status_code}: {response.reason_phrase}"

    status = response.status_code
    if status == 429:
        retry_after = response.headers.get("Retry-After")
        return RateLimited(status, message, int(retry_after) if retry_after and retry_after.isdigit() else None)
    if status in (401, 403):
        return NotAuthorizedError(status, message)
    if status == 404:
        return NotFoundError(status, message)
    return ApiError(status, message)


def is_retryable(error: Exception) -> bool:
    """
    Rate limits, server side failures and transport errors can be retried with backoff;
    authorization and lookup failures are terminal.
    """
    if isinstance(error, RateLimited):
        return True
    if isinstance(error, ApiError):
        return error.status >= 500
    return isinstance(error, httpx.TransportError)
