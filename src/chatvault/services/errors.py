from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from chatvault.core.exceptions import ChatVaultError, NotAuthorized, NotFound, Conflict, Transient, ValidationFailed
from chatvault.encryption import InvalidKeyLength

_STATUS_BY_ERROR = {
    NotAuthorized: status.HTTP_403_FORBIDDEN,
    NotFound: status.HTTP_404_NOT_FOUND,
    Conflict: status.HTTP_409_CONFLICT,
    ValidationFailed: status.HTTP_400_BAD_REQUEST,
    Transient: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def register_exception_handlers(app: FastAPI, logger: logging.Logger):
    """
    Maps domain errors onto HTTP responses shaped {"error": "..."}.
    """

    @app.exception_handler(ChatVaultError)
    async def domain_error_handler(request: Request, exc: ChatVaultError):
        status_code = next(
            (code for error_type, code in _STATUS_BY_ERROR.items() if isinstance(exc, error_type)),
            status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            logger.info("%s %s rejected (%d): %s", request.method, request.url.path, status_code, exc)

        body = {"error": exc.message or exc.__class__.__name__}
        if isinstance(exc, ValidationFailed) and exc.required:
            body["required"] = exc.required
        return JSONResponse(status_code=status_code, content=body)

    @app.exception_handler(InvalidKeyLength)
    async def key_error_handler(request: Request, exc: InvalidKeyLength):
        logger.critical("Encryption key misconfigured: %s", exc, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"}
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        required = [str(err["loc"][-1]) for err in errors if err.get("type") == "missing"]
        body = {"error": "Invalid request" if not required else "Missing required fields"}
        if required:
            body["required"] = required
        else:
            body["details"] = [err.get("msg") for err in errors]
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None)
        )
