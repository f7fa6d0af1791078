"""Marketplace (TikTok Shop) API collaborator."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Any
from urllib.parse import urlencode

import httpx

from fastapi_printqueue.config import PrintQueueConfig
from fastapi_printqueue.exceptions import (
    CommunicationError,
    ReauthorizationRequired,
)

logger = logging.getLogger(__name__)

API_VERSION = "202309"
SHOPS_PATH = f"/shop/{API_VERSION}/shops"
ORDER_SEARCH_PATH = f"/order/{API_VERSION}/orders/search"


class MarketplaceClient:
    """Authenticated HTTP client for the marketplace open API.

    Construct one per process and pass it to the services that need it.
    """

    def __init__(
        self,
        config: PrintQueueConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.app_key = config.marketplace_app_key
        self.app_secret = config.marketplace_app_secret
        self.redirect_uri = config.marketplace_redirect_uri
        self.api_base_url = config.marketplace_api_base_url.rstrip("/")
        self.auth_base_url = config.marketplace_auth_base_url.rstrip("/")
        self.http = http_client or httpx.AsyncClient(
            timeout=config.api_timeout_seconds
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    def authorization_url(self, state: str) -> str:
        params = urlencode(
            {
                "app_key": self.app_key,
                "state": state,
                "response_type": "code",
                "redirect_uri": self.redirect_uri,
            }
        )
        return f"{self.auth_base_url}/oauth/authorize?{params}"

    async def exchange_code_for_token(self, code: str) -> dict[str, Any]:
        data = await self._request(
            "POST",
            f"{self.auth_base_url}/api/v2/token/get",
            json={
                "app_key": self.app_key,
                "app_secret": self.app_secret,
                "auth_code": code,
                "grant_type": "authorized_code",
            },
        )
        logger.info("Token exchange successful")
        return data

    async def refresh_token(self, refresh_token: str) -> dict[str, Any]:
        data = await self._request(
            "POST",
            f"{self.auth_base_url}/api/v2/token/refresh",
            json={
                "app_key": self.app_key,
                "app_secret": self.app_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        logger.info("Token refresh successful")
        return data

    async def get_shop_info(self, access_token: str) -> dict[str, Any]:
        params = self._signed_params(SHOPS_PATH, {})
        return await self._request(
            "GET",
            f"{self.api_base_url}{SHOPS_PATH}",
            params=params,
            headers={"x-tts-access-token": access_token},
        )

    async def get_orders(
        self,
        access_token: str,
        shop_id: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Search one page of orders; ``params`` carries paging fields."""
        body = dict(params or {})
        query = self._signed_params(
            ORDER_SEARCH_PATH, {"shop_id": shop_id, **body}
        )
        return await self._request(
            "POST",
            f"{self.api_base_url}{ORDER_SEARCH_PATH}",
            params=query,
            json=body,
            headers={"x-tts-access-token": access_token},
        )

    def generate_signature(
        self, path: str, params: dict[str, Any], body: str = ""
    ) -> str:
        """sha256 of secret, path, sorted key/value pairs, body, secret."""
        joined = "".join(f"{key}{params[key]}" for key in sorted(params))
        payload = f"{self.app_secret}{path}{joined}{body}{self.app_secret}"
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def webhook_signature(self, timestamp: str, body: bytes | str) -> str:
        """Signed over the raw body bytes, whatever their encoding."""
        if isinstance(body, str):
            body = body.encode("utf-8")
        secret = self.app_secret.encode("utf-8")
        payload = secret + timestamp.encode("utf-8") + body + secret
        return hashlib.sha256(payload).hexdigest()

    def verify_webhook_signature(
        self, signature: str, timestamp: str, body: bytes | str
    ) -> bool:
        if not signature or not timestamp or not self.app_secret:
            return False
        expected = self.webhook_signature(timestamp, body)
        return hmac.compare_digest(
            signature.encode("utf-8"), expected.encode("utf-8")
        )

    def _signed_params(
        self, path: str, extra: dict[str, Any]
    ) -> dict[str, Any]:
        params = {
            "app_key": self.app_key,
            "timestamp": str(int(time.time())),
            "version": API_VERSION,
            **{
                key: value
                for key, value in extra.items()
                if not isinstance(value, dict | list)
            },
        }
        params["sign"] = self.generate_signature(path, params)
        return params

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict:
        try:
            response = await self.http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error(
                "Marketplace request %s %s failed: %s", method, url, exc
            )
            raise CommunicationError(
                f"Marketplace unreachable: {exc}"
            ) from exc

        if response.status_code in (401, 403):
            raise ReauthorizationRequired(
                f"Marketplace rejected credentials ({response.status_code})"
            )
        if response.status_code >= 400:
            logger.error(
                "Marketplace request %s %s returned %d: %s",
                method,
                url,
                response.status_code,
                response.text[:500],
            )
            raise CommunicationError(
                f"Marketplace returned HTTP {response.status_code}"
            )
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            raise CommunicationError(
                "Marketplace returned invalid JSON"
            ) from exc
