# app/services/calendar/token_service.py
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.exceptions import OAuthConfigError, TokenRefreshError
from app.models import CalendarIntegration, SystemIntegration
from app.utils.encryption import decrypt_token, encrypt_token
from app.utils.time_utils import as_utc, utcnow

settings = get_settings()

logger = logging.getLogger(__name__)

GOOGLE_OAUTH_INTEGRATION = "google_oauth"


@dataclass
class OAuthClientConfig:
    client_id: str
    client_secret: str


class TokenLifecycleManager:
    """
    Owns the per-tenant OAuth credentials of the remote calendar.

    Hands out a usable access token, refreshing it through the provider's
    token endpoint once the stored one has expired. A failed refresh never
    touches the stored row, so the next attempt starts from the same state.
    """

    def __init__(
        self,
        db: Session,
        http: Optional[requests.Session] = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.http = http or requests.Session()
        self.now = now

    def get_integration(self, business_id: UUID) -> Optional[CalendarIntegration]:
        return (
            self.db.query(CalendarIntegration)
            .filter(CalendarIntegration.business_id == business_id)
            .first()
        )

    def get_client_config(self) -> OAuthClientConfig:
        """Platform OAuth client: system_integrations row first, then settings"""
        row = (
            self.db.query(SystemIntegration)
            .filter(SystemIntegration.integration_type == GOOGLE_OAUTH_INTEGRATION)
            .first()
        )
        config = (row.config or {}) if row else {}
        client_id = config.get("client_id") or settings.GOOGLE_CLIENT_ID
        client_secret = config.get("client_secret") or settings.GOOGLE_CLIENT_SECRET

        if not client_id or not client_secret:
            raise OAuthConfigError("Google OAuth client id/secret are not configured")
        return OAuthClientConfig(client_id=client_id, client_secret=client_secret)

    def get_valid_access_token(self, business_id: UUID) -> Optional[str]:
        """
        Return an access token for the tenant's calendar.

        Returns:
            The stored token while it is unexpired, a freshly refreshed one
            otherwise, or None when the tenant has no active connection.

        Raises:
            TokenRefreshError: provider rejected the refresh or was unreachable
            OAuthConfigError: platform client credentials are missing
        """
        integration = self.get_integration(business_id)
        if integration is None or not integration.is_connected:
            return None

        if as_utc(integration.token_expires_at) > self.now():
            return decrypt_token(integration.access_token_encrypted)

        logger.info(f"Access token expired for business {business_id}, refreshing")
        return self.refresh_access_token(integration)

    def refresh_access_token(self, integration: CalendarIntegration) -> str:
        """Exchange the refresh token for a new access token and persist it"""
        client = self.get_client_config()
        refresh_token = decrypt_token(integration.refresh_token_encrypted)

        try:
            response = self.http.post(
                settings.GOOGLE_TOKEN_URI,
                data={
                    "client_id": client.client_id,
                    "client_secret": client.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
                timeout=settings.OUTBOUND_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.error(f"Token refresh request failed for business {integration.business_id}: {e}")
            raise TokenRefreshError(f"Token refresh request failed: {e}") from e

        payload = _response_payload(response)
        if not response.ok:
            logger.error(
                f"Token refresh rejected for business {integration.business_id}: "
                f"{response.status_code} {payload}"
            )
            raise TokenRefreshError(f"Token refresh failed: {payload}", payload=payload)

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise TokenRefreshError("Token refresh response carried no access_token", payload=payload)

        integration.access_token_encrypted = encrypt_token(access_token)
        integration.token_expires_at = self.now() + timedelta(minutes=settings.ACCESS_TOKEN_TTL_MINUTES)
        # Providers may rotate the refresh token
        if payload.get("refresh_token"):
            integration.refresh_token_encrypted = encrypt_token(payload["refresh_token"])
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info(f"Refreshed access token for business {integration.business_id}")
        return access_token

    def store_authorization(
        self,
        business_id: UUID,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[datetime] = None,
    ) -> CalendarIntegration:
        """Upsert the tenant's credentials after a completed OAuth handshake"""
        integration = self.get_integration(business_id)
        if expires_at is None:
            expires_at = self.now() + timedelta(minutes=settings.ACCESS_TOKEN_TTL_MINUTES)

        if integration is None:
            if not refresh_token:
                raise TokenRefreshError("Authorization did not return a refresh token")
            integration = CalendarIntegration(
                business_id=business_id,
                provider="google",
                calendar_id="primary",
            )
            self.db.add(integration)
        elif refresh_token is None:
            # Re-consent without a new refresh token keeps the old one
            logger.info(f"Keeping stored refresh token for business {business_id}")

        integration.access_token_encrypted = encrypt_token(access_token)
        if refresh_token:
            integration.refresh_token_encrypted = encrypt_token(refresh_token)
        integration.token_expires_at = as_utc(expires_at)
        integration.is_connected = True
        self.db.commit()
        self.db.refresh(integration)

        logger.info(f"Stored calendar authorization for business {business_id}")
        return integration

    def set_calendar_id(self, business_id: UUID, calendar_id: str) -> Optional[CalendarIntegration]:
        integration = self.get_integration(business_id)
        if integration is None:
            return None
        integration.calendar_id = calendar_id
        self.db.commit()
        self.db.refresh(integration)
        return integration

    def disconnect(self, business_id: UUID) -> bool:
        """Forget the tenant's credentials; later syncs are skipped"""
        integration = self.get_integration(business_id)
        if integration is None:
            return False
        self.db.delete(integration)
        self.db.commit()
        logger.info(f"Disconnected calendar for business {business_id}")
        return True


def _response_payload(response: requests.Response):
    """Parsed JSON body, or the raw text when the body is not JSON"""
    try:
        return response.json()
    except ValueError:
        return response.text
