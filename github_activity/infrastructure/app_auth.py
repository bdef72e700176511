"""Helpers for GitHub App authentication (installation access tokens)."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

import aiohttp
from jose import jwt
from jose.exceptions import JOSEError

from github_activity.config import DEFAULT_API_URL, DEFAULT_REQUEST_TIMEOUT
from github_activity.domain.exceptions import AuthenticationError, ConfigurationError
from github_activity.domain.models import InstallationToken

logger = logging.getLogger(__name__)

# GitHub rejects app JWTs valid for more than 10 minutes
JWT_LIFETIME_SECONDS = 600
# Backdated to tolerate clock drift between us and GitHub
JWT_CLOCK_SKEW_SECONDS = 60


def load_private_key(raw: str) -> str:
    """Accepts a PEM string (literal `\\n` sequences allowed) or a path to a PEM file."""
    if "BEGIN" in raw and "PRIVATE KEY" in raw:
        return raw.replace("\\n", "\n")
    path = Path(raw.strip().strip('"'))
    try:
        if path.is_file():
            return path.read_text()
    except OSError as exc:
        # a pasted key body without its BEGIN/END lines overflows the filename limit
        raise ConfigurationError(
            "GitHub App private key must be a PEM string or a path to a private key file",
        ) from exc
    raise ConfigurationError(
        "GitHub App private key must be a PEM string or a path to a private key file",
    )


def generate_app_jwt(app_id: str, private_key: str, now: Optional[int] = None) -> str:
    if now is None:
        now = int(time.time())
    payload = {
        "iat": now - JWT_CLOCK_SKEW_SECONDS,
        "exp": now + JWT_LIFETIME_SECONDS,
        "iss": str(app_id),
    }
    pem = load_private_key(private_key)
    try:
        return jwt.encode(payload, pem, algorithm="RS256")
    except JOSEError as exc:
        raise ConfigurationError(f"GitHub App private key could not be used for signing: {exc}") from exc


async def exchange_installation_token(
    session: aiohttp.ClientSession,
    app_jwt: str,
    installation_id: int,
    api_url: str = DEFAULT_API_URL,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> InstallationToken:
    """
    Trades an app JWT for an installation access token.

    Raises:
        AuthenticationError: If GitHub rejects the exchange (unknown installation,
            revoked grant, expired or wrong signing key) or the response carries no token.
    """
    url = f"{api_url.rstrip('/')}/app/installations/{installation_id}/access_tokens"
    headers = {
        "Authorization": f"Bearer {app_jwt}",
        "Accept": "application/vnd.github+json",
    }

    try:
        async with session.post(url, headers=headers, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            if response.status >= 400:
                try:
                    body = await response.json(content_type=None)
                    message = body.get("message", "") if isinstance(body, dict) else ""
                except (aiohttp.ContentTypeError, ValueError):
                    message = ""
                raise AuthenticationError(
                    f"GitHub rejected the installation token request for installation "
                    f"{installation_id} (HTTP {response.status}): {message or response.reason}"
                )
            try:
                data = await response.json(content_type=None)
            except (aiohttp.ContentTypeError, ValueError):
                data = None
    except aiohttp.ClientError as exc:
        raise AuthenticationError(f"Installation token request for {installation_id} failed: {exc}") from exc

    token = data.get("token") if isinstance(data, dict) else None
    if not token:
        raise AuthenticationError("GitHub installation token response is missing the token")

    expires_at_raw = data.get("expires_at")
    expires_at = datetime.fromisoformat(expires_at_raw.replace("Z", "+00:00")) if expires_at_raw else None

    logger.debug(f"Generated installation access token for {installation_id}, expires at {expires_at}.")
    return InstallationToken(token=token, expires_at=expires_at)
