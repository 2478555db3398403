"""
Settings Fetcher - global fee settings with fail-open defaults

Loads the fee settings record from the app-settings endpoint. Absence of
remote config must never block the dashboard, so every failure (transport
error, non-2xx status, bad JSON, invalid record) is logged and replaced by
the built-in defaults. fetch_fee_settings() never raises.
"""

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from .config import APP_SETTINGS_URL, APP_SETTINGS_TIMEOUT_SECONDS, DEFAULT_FEE_SETTINGS
from .errors import FetchFailed
from .models import FeeSettings

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = httpx.Timeout(APP_SETTINGS_TIMEOUT_SECONDS, connect=5.0)


def default_fee_settings() -> FeeSettings:
    return FeeSettings.model_validate(DEFAULT_FEE_SETTINGS)


def parse_fee_settings(data) -> FeeSettings:
    """
    Validate a raw settings record.

    Missing fields fall back to their defaults; a record that is not an
    object or has wrongly typed fields raises FetchFailed.
    """
    if not isinstance(data, dict):
        raise FetchFailed(f"Settings payload is not an object: {type(data).__name__}")
    try:
        return FeeSettings.model_validate({**DEFAULT_FEE_SETTINGS, **data})
    except ValidationError as e:
        raise FetchFailed(f"Invalid settings payload: {e.error_count()} error(s)") from e


class SettingsFetcher:
    """Fetches fee settings from the app-settings endpoint."""

    def __init__(self, url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.url = url or APP_SETTINGS_URL
        self._client = client

    async def fetch_fee_settings(self) -> FeeSettings:
        try:
            data = await self._get_json()
            return parse_fee_settings(data)
        except Exception as e:
            logger.error(f"Error fetching app settings, using defaults: {e}")
            return default_fee_settings()

    async def _get_json(self):
        if self._client is not None:
            response = await self._client.get(self.url)
        else:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                response = await client.get(self.url)

        if not response.is_success:
            raise FetchFailed(f"Failed to fetch app settings: HTTP {response.status_code}")

        return response.json()
