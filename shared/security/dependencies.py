import structlog
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials, APIKeyHeader

from .jwt_handler import verify_access_token
from .api_key import verify_cron_secret, cron_secret_configured

logger = structlog.get_logger(__name__)

# Expected header format (Bearer <token>)
bearer_scheme = HTTPBearer(auto_error=False)

# Header sent by the scheduler that triggers the retry sweep
cron_secret_header = APIKeyHeader(name="X-Cron-Secret", auto_error=False)


def _error(status_code: int, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail=message)


async def get_current_seller(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """Dependency to validate the seller's JWT and return the seller ID (sub)."""
    if credentials is None or not credentials.credentials:
        raise _error(status.HTTP_401_UNAUTHORIZED, "No authorization token provided")

    payload = verify_access_token(credentials.credentials)
    seller_id = payload.get("sub") if payload else None
    if not seller_id:
        logger.warning("invalid_token", path=request.url.path)
        raise _error(status.HTTP_401_UNAUTHORIZED, "Invalid or expired token")

    # Store in request state for downstream use (logging, rate limiting)
    request.state.seller_id = seller_id
    return seller_id


async def verify_cron_request(
    header_secret: str | None = Depends(cron_secret_header),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> bool:
    """Dependency guarding scheduler-only endpoints with the shared CRON_SECRET."""
    if not cron_secret_configured():
        logger.error("cron_secret_not_configured")
        raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Cron secret not configured")

    provided = header_secret or (credentials.credentials if credentials else None)
    if not verify_cron_secret(provided):
        logger.warning("invalid_cron_secret")
        raise _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized")
    return True
