from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address


def client_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Public order creation is anonymous, so the client's IP address is the key
    (X-Forwarded-For is honoured when Uvicorn runs with --proxy-headers).
    """
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=client_ip)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """slowapi's default handler, rendered in the API's error envelope."""
    response = JSONResponse(
        status_code=429,
        content={"error": {
            "message": f"Too many requests, please try again later ({exc.detail})",
            "status": 429,
            "code": "rate_limited",
        }},
    )
    return request.app.state.limiter._inject_headers(response, request.state.view_rate_limit)
