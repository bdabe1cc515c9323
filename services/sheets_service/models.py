import uuid

from sqlalchemy import Column, String, Text, DateTime

from shared.config.database import Base
from shared.time_utils import utcnow


class GoogleSheetsConnection(Base):
    """One per seller. Deleted when Google reports the grant revoked or the sheet gone."""
    __tablename__ = "google_sheets_connections"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    seller_id = Column(String(36), nullable=False, unique=True, index=True)
    spreadsheet_id = Column(String(128), nullable=False)
    spreadsheet_url = Column(String(512), nullable=False)
    refresh_token = Column(Text, nullable=False)  # TokenVault ciphertext, never plaintext
    access_token = Column(Text, nullable=True)    # short-lived cache
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    connected_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
