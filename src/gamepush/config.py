"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with GAMEPUSH_ prefix
(an optional .env file is read too). Credentials are not checked at import
time: the application context calls require_vapid_keys() and
load_service_account() while starting, so a missing key stops the process
before any listener is attached.
"""

import json
import os
from datetime import tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class ConfigurationError(Exception):
    """Required credentials are missing or malformed."""


class Settings(BaseSettings):
    """All app configuration. Set via GAMEPUSH_* env vars."""

    # Firebase Realtime Database
    firebase_db_url: str = "https://new-satta-app-default-rtdb.firebaseio.com/"
    firebase_service_account: str = ""  # service account JSON, inline
    firebase_service_account_file: str = "serviceAccountKey.json"

    # Web Push (VAPID)
    vapid_public_key: str = ""
    vapid_private_key: str = ""
    vapid_subject: str = "mailto:your-email@example.com"
    push_timeout_seconds: float = 10.0
    push_ttl_seconds: int = 2419200  # 4 weeks

    # Store layout
    tracked_root: str = "sattanamee"
    subscriptions_path: str = "webPushSubscriptions"

    # Notification behaviour
    dedup_window_seconds: float = 5.0
    timezone: str = ""  # IANA name; empty means the process-local zone

    # Server
    environment: str = "development"
    debug: bool = False
    log_json: bool = False
    host: str = "0.0.0.0"
    port: int = 3000

    # CORS
    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_prefix="GAMEPUSH_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        if value:
            try:
                ZoneInfo(value)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError(f"Unknown time zone: {value!r}") from e
        return value

    @property
    def tzinfo(self) -> Optional[tzinfo]:
        """Zone used to decide what "today" is; None for process-local."""
        return ZoneInfo(self.timezone) if self.timezone else None

    def require_vapid_keys(self) -> tuple[str, str]:
        """Return the (public, private) VAPID key pair or fail."""
        if not self.vapid_public_key or not self.vapid_private_key:
            raise ConfigurationError(
                "VAPID keys are required. Set GAMEPUSH_VAPID_PUBLIC_KEY and "
                "GAMEPUSH_VAPID_PRIVATE_KEY environment variables."
            )
        return self.vapid_public_key, self.vapid_private_key

    def load_service_account(self) -> dict[str, Any] | str:
        """Resolve Firebase service account credentials.

        Inline JSON from GAMEPUSH_FIREBASE_SERVICE_ACCOUNT wins. Without it
        the credentials file is used (its path is returned for the SDK to
        load). Malformed JSON or no credentials at all is fatal.
        """
        if self.firebase_service_account:
            try:
                account = json.loads(self.firebase_service_account)
            except json.JSONDecodeError as e:
                raise ConfigurationError(
                    "Failed to parse GAMEPUSH_FIREBASE_SERVICE_ACCOUNT JSON"
                ) from e
            if not isinstance(account, dict):
                raise ConfigurationError(
                    "GAMEPUSH_FIREBASE_SERVICE_ACCOUNT must be a JSON object"
                )
            return account

        path = self.firebase_service_account_file
        if path and os.path.isfile(path):
            logger.warning(
                "config.service_account_from_file",
                path=path,
                hint="For production, supply GAMEPUSH_FIREBASE_SERVICE_ACCOUNT",
            )
            return path

        raise ConfigurationError("No Firebase service account credentials found")


# Singleton: import this everywhere
settings = Settings()
