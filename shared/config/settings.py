import os
from dotenv import load_dotenv

load_dotenv()

# --- Database ---
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    DB_USER = os.getenv("POSTGRES_USER", "postgres")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("POSTGRES_HOST", "localhost")  # In Docker, this will be 'postgres'
    DB_PORT = os.getenv("POSTGRES_PORT", "5432")
    DB_NAME = os.getenv("POSTGRES_DB", "livey")
    DATABASE_URL = f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"

SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

# --- Identity provider tokens ---
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# --- Token vault (64 hex chars = 32 bytes) ---
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "")

# --- Cron ---
CRON_SECRET = os.getenv("CRON_SECRET", "")

# --- Google OAuth / Sheets ---
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", "")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
SHEETS_TIMEZONE = os.getenv("SHEETS_TIMEZONE", "Africa/Algiers")
SHEETS_SPREADSHEET_TITLE = os.getenv("SHEETS_SPREADSHEET_TITLE", "Livey Orders")
EXTERNAL_HTTP_TIMEOUT_SECONDS = float(os.getenv("EXTERNAL_HTTP_TIMEOUT_SECONDS", "10"))

# --- OAuth state store ---
OAUTH_STATE_BACKEND = os.getenv("OAUTH_STATE_BACKEND", "memory")  # memory | redis
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# --- Rate limiting ---
ORDER_RATE_LIMIT = os.getenv("ORDER_RATE_LIMIT", "10/15minutes")

# --- Observability ---
SERVICE_NAME = "livey_api"
SERVICE_VERSION = "1.0.0"
OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT", "")
