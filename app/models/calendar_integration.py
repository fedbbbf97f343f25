# ===== app/models/calendar_integration.py =====
from sqlalchemy import Column, String, Boolean, DateTime, LargeBinary, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.models.base import Base
import uuid


class CalendarIntegration(Base):
    """
    Per-tenant OAuth credential set for the remote calendar.
    Written only by TokenLifecycleManager; read by the calendar sync.
    """
    __tablename__ = "calendar_integrations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False, unique=True)

    provider = Column(String(20), nullable=False, default="google")
    is_connected = Column(Boolean, nullable=False, default=True)

    # OAuth tokens, Fernet-encrypted at rest
    access_token_encrypted = Column(LargeBinary, nullable=False)
    refresh_token_encrypted = Column(LargeBinary, nullable=False)
    token_expires_at = Column(DateTime(timezone=True), nullable=False)

    calendar_id = Column(String(255), nullable=True)  # None means the "primary" calendar

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<CalendarIntegration(business_id={self.business_id}, connected={self.is_connected})>"


class SystemIntegration(Base):
    """
    Platform-wide integration config, e.g. the OAuth client used to
    exchange refresh tokens (integration_type="google_oauth").
    """
    __tablename__ = "system_integrations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    integration_type = Column(String(50), nullable=False, unique=True)
    config = Column(JSON, nullable=False, default=dict)  # {"client_id": ..., "client_secret": ...}

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
