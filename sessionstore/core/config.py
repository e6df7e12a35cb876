"""
Session store configuration using Pydantic Settings.

Configuration values can be set via environment variables or .env file.
"""

import json
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Thirty days, the cookie and record lifetime when nothing else is configured
DEFAULT_MAX_AGE = 86400 * 30

INSECURE_SECRET_KEY = "your-secret-key-here-change-in-production"


class Settings(BaseSettings):
    """Session store settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "sessionstore"
    DEV_MODE: bool = False

    # Embedded database holding the session records
    DATABASE_URL: str = "sqlite:///./data/sessions.db"

    # Cookie authentication keys. Each entry is "hash_key" (sign only) or
    # "hash_key:block_key" (sign and encrypt). The first entry encodes new
    # cookies, the rest are only tried when decoding.
    SECRET_KEY: str = INSECURE_SECRET_KEY
    SESSION_KEYS: Annotated[List[str], NoDecode] = []
    SESSION_KEY_SALT: str = "sessionstore.cookie"
    ENCRYPTION_KDF_ITERATIONS: int = 300000

    # Cookie options
    SESSION_COOKIE_NAME: str = "session"
    SESSION_MAX_AGE: int = DEFAULT_MAX_AGE
    SESSION_MAX_LENGTH: int = 4096
    SESSION_COOKIE_PATH: str = "/"
    SESSION_COOKIE_DOMAIN: Optional[str] = None
    SESSION_COOKIE_SECURE: bool = False
    SESSION_COOKIE_HTTP_ONLY: bool = True
    SESSION_COOKIE_SAME_SITE: Literal["lax", "strict", "none"] = "lax"

    # Server settings used by run.py
    HOST: str = "127.0.0.1"
    PORT: int = 8500

    # Seconds between expired-record sweeps, 0 disables the sweeper
    SESSION_SWEEP_INTERVAL: int = 300

    @field_validator("SESSION_KEYS", mode="before")
    @classmethod
    def parse_session_keys(cls, v: Union[str, List[str], None]) -> List[str]:
        """Parse session keys from a JSON list or a comma-separated string"""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return []
            if v.startswith("["):
                try:
                    parsed = json.loads(v)
                except json.JSONDecodeError:
                    parsed = None
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
            return [item.strip() for item in v.split(",") if item.strip()]
        return [str(item).strip() for item in v if str(item).strip()]

    @field_validator("SESSION_SWEEP_INTERVAL", "SESSION_MAX_LENGTH")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must not be negative")
        return v

    def key_pairs(self) -> List[Optional[str]]:
        """
        Flatten the configured keys into a hash/block key sequence.

        Returns:
            [hash_key, block_key, hash_key, block_key, ...] where block_key is
            None for sign-only entries
        """
        entries = self.SESSION_KEYS or [self.SECRET_KEY]
        pairs: List[Optional[str]] = []
        for entry in entries:
            hash_key, _, block_key = entry.partition(":")
            pairs.append(hash_key)
            pairs.append(block_key or None)
        return pairs

    def uses_insecure_secret(self) -> bool:
        return not self.SESSION_KEYS and self.SECRET_KEY == INSECURE_SECRET_KEY

    def cookie_options(self) -> dict[str, Any]:
        """Store-wide cookie options as keyword arguments for CookieOptions"""
        return {
            "path": self.SESSION_COOKIE_PATH,
            "domain": self.SESSION_COOKIE_DOMAIN,
            "max_age": self.SESSION_MAX_AGE,
            "secure": self.SESSION_COOKIE_SECURE,
            "http_only": self.SESSION_COOKIE_HTTP_ONLY,
            "same_site": self.SESSION_COOKIE_SAME_SITE,
        }


# Global settings instance
settings = Settings()
