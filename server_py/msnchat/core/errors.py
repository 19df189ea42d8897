from __future__ import annotations

import logging
import math

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ChatError(Exception):
    """Базовая ошибка чата."""


class ChatValidationError(ChatError):
    """Не хватает обязательных полей запроса."""


class RateLimited(ChatError):
    def __init__(self, retry_after: float) -> None:
        super().__init__(f"rate limited, retry after {retry_after:.1f}s")
        self.retry_after = retry_after

    @property
    def wait_time(self) -> int:
        return max(1, math.ceil(self.retry_after))


class StoreUnavailable(ChatError):
    """Хранилище недоступно или ответило ошибкой."""


class StoreNotReady(StoreUnavailable):
    """Хранилище отвечает, но схема еще не создана."""


async def _validation_handler(request: Request, exc: ChatValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc) or "Missing required fields"})


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Missing required fields"})


async def _rate_limited_handler(request: Request, exc: RateLimited) -> JSONResponse:
    wait = exc.wait_time
    return JSONResponse(
        status_code=429,
        content={
            "error": f"Please wait {wait} seconds before sending another message",
            "waitTime": wait,
        },
    )


async def _store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    if request.url.path.endswith("/typing"):
        return JSONResponse(status_code=500, content={"error": "Failed to update typing"})
    return JSONResponse(status_code=500, content={"error": "Failed to insert message"})


async def _unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChatValidationError, _validation_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(RateLimited, _rate_limited_handler)
    app.add_exception_handler(StoreUnavailable, _store_unavailable_handler)
    app.add_exception_handler(Exception, _unhandled_handler)
