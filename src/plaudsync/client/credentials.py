"""Stored session credentials.

This module provides:
- StoredCredentials: Validated session (cookies, bearer token, endpoints)
- load_credentials / save_credentials: JSON file persistence
- is_expired: Expiry check without contacting the service

Acquiring credentials (the browser login) happens outside this package;
whatever performs it hands a StoredCredentials to save_credentials().
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from plaudsync.core.config import get_config_dir
from plaudsync.core.timestamps import ensure_utc, from_epoch, utc_now
from plaudsync.storage.atomic import write_file_atomic

logger = logging.getLogger(__name__)

# Credentials without any expiry signal are considered stale after this
FALLBACK_LIFETIME = timedelta(days=30)

# Only cookies for these domains carry the session
SESSION_COOKIE_DOMAIN = "plaud.ai"


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Cookie(_Model):
    """A browser cookie captured during login."""

    name: str
    value: str
    domain: str
    path: str = "/"
    http_only: bool = False
    secure: bool = False
    same_site: Literal["Strict", "Lax", "None"] | None = None
    expires: float | None = None


class EndpointMap(_Model):
    """Optional endpoint overrides discovered during login."""

    list_recordings: str | None = None
    batch_detail: str | None = None
    get_audio_url: str | None = None
    user_profile: str | None = None
    api_base_url: str | None = None


class StoredCredentials(_Model):
    """Session credentials persisted between runs."""

    schema_version: Literal[1] = 1
    cookies: list[Cookie] = Field(default_factory=list)
    auth_token: str | None = None
    api_base_url: str = "https://api.plaud.ai"
    captured_at: datetime
    expires_at: datetime | None = None
    endpoint_map: EndpointMap | None = None

    def cookie_header(self) -> str:
        """Render the cookies as a Cookie request header value."""
        return "; ".join(f"{c.name}={c.value}" for c in self.cookies)


def get_credentials_path() -> Path:
    """Get the path to the stored credentials file."""
    return get_config_dir() / "credentials.json"


def load_credentials(path: Path | None = None) -> StoredCredentials | None:
    """Load stored credentials.

    Args:
        path: Credentials file (defaults to ~/.plaudsync/credentials.json).

    Returns:
        StoredCredentials, or None if missing or invalid.
    """
    path = path or get_credentials_path()
    if not path.exists():
        return None
    try:
        return StoredCredentials.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as e:
        logger.warning(f"Stored credentials failed validation, re-authenticate: {e}")
        return None
    except OSError as e:
        logger.warning(f"Failed to read credentials file {path}: {e}")
        return None


def save_credentials(credentials: StoredCredentials, path: Path | None = None) -> Path:
    """Save credentials atomically.

    Returns:
        Path the credentials were written to.
    """
    path = path or get_credentials_path()
    write_file_atomic(path, credentials.model_dump_json(by_alias=True, indent=2))
    logger.info(f"Credentials saved to {path}")
    return path


def is_expired(credentials: StoredCredentials, now: datetime | None = None) -> bool:
    """Check whether credentials are expired.

    Precedence: explicit expires_at, then the JWT exp claim of the bearer
    token, then the earliest session-cookie expiry, then FALLBACK_LIFETIME
    after capture.
    """
    now = ensure_utc(now) if now else utc_now()

    if credentials.expires_at:
        return now > ensure_utc(credentials.expires_at)

    if credentials.auth_token:
        exp = decode_jwt_exp(credentials.auth_token)
        if exp is not None:
            return now > from_epoch(exp)

    expiries = [
        c.expires
        for c in credentials.cookies
        if c.expires and c.expires > 0 and _is_session_domain(c.domain)
    ]
    if expiries and now > from_epoch(min(expiries)):
        return True

    return now - ensure_utc(credentials.captured_at) > FALLBACK_LIFETIME


def decode_jwt_exp(token: str) -> float | None:
    """Decode the exp claim of a JWT without verifying its signature."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (binascii.Error, ValueError):
        return None
    exp = claims.get("exp") if isinstance(claims, dict) else None
    return float(exp) if isinstance(exp, (int, float)) else None


def _is_session_domain(domain: str) -> bool:
    domain = domain.lstrip(".")
    return domain == SESSION_COOKIE_DOMAIN or domain.endswith("." + SESSION_COOKIE_DOMAIN)
