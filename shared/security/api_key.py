import secrets

from shared.config import settings


def cron_secret_configured() -> bool:
    return bool(settings.CRON_SECRET)


def verify_cron_secret(provided_secret: str | None) -> bool:
    """Verify the scheduler's shared secret using constant-time comparison."""
    if not provided_secret or not settings.CRON_SECRET:
        return False
    return secrets.compare_digest(str(provided_secret), str(settings.CRON_SECRET))
