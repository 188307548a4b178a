import os

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

# One window shared by every /api route, per client address
API_RATE_LIMIT = os.getenv("API_RATE_LIMIT", "50 per 15 minutes")
API_SCOPE = "api"
RATE_LIMIT_MESSAGE = "Too many requests, please try again later."

limiter = Limiter(key_func=get_remote_address)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(status_code=429, content={"error": RATE_LIMIT_MESSAGE})
