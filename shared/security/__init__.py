from .jwt_handler import create_access_token, verify_access_token
from .api_key import verify_cron_secret
from .dependencies import get_current_seller, verify_cron_request
from .rate_limiter import limiter, client_ip, rate_limit_exceeded_handler
from .encryption import TokenVault, TokenDecryptionError, get_token_vault

__all__ = [
    "create_access_token",
    "verify_access_token",
    "verify_cron_secret",
    "get_current_seller",
    "verify_cron_request",
    "limiter",
    "client_ip",
    "rate_limit_exceeded_handler",
    "TokenVault",
    "TokenDecryptionError",
    "get_token_vault",
]
