"""Connecting marketplace shops through the OAuth authorization flow."""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Any

from fastapi_printqueue.clock import Clock, utcnow
from fastapi_printqueue.exceptions import (
    CommunicationError,
    InvalidOAuthStateError,
)
from fastapi_printqueue.ingestion import SHOP_ACTIVE
from fastapi_printqueue.kvstore import KeyValueStore
from fastapi_printqueue.marketplace import MarketplaceClient
from fastapi_printqueue.protocols import Shop, ShopRepository

logger = logging.getLogger(__name__)

STATE_PREFIX = "oauth-state:"


class ShopConnector:
    """Two-step shop connection.

    ``begin`` issues a one-time state bound to the user; ``complete`` trades
    the authorization code for tokens and upserts the shop.
    """

    def __init__(
        self,
        shops: ShopRepository,
        marketplace: MarketplaceClient,
        kv: KeyValueStore,
        *,
        state_ttl: timedelta = timedelta(minutes=5),
        clock: Clock = utcnow,
    ) -> None:
        self.shops = shops
        self.marketplace = marketplace
        self.kv = kv
        self.state_ttl = state_ttl
        self.clock = clock

    async def begin(self, user_id: str) -> tuple[str, str]:
        """Return ``(authorization_url, state)``."""
        state = secrets.token_urlsafe(24)
        await self.kv.put(
            STATE_PREFIX + state, {"user_id": user_id}, self.state_ttl
        )
        return self.marketplace.authorization_url(state), state

    async def complete(self, code: str, state: str) -> Shop:
        key = STATE_PREFIX + state
        data = await self.kv.get(key)
        if data is None:
            raise InvalidOAuthStateError("Invalid or expired state parameter")
        await self.kv.delete(key)

        response = await self.marketplace.exchange_code_for_token(code)
        tokens = response.get("data") or {}
        if not tokens.get("access_token"):
            raise CommunicationError("Invalid token response from marketplace")

        info = await self.marketplace.get_shop_info(tokens["access_token"])
        shop_info = _first_shop(info.get("data") or {})
        platform_shop_id = shop_info and (
            shop_info.get("id") or shop_info.get("shop_id")
        )
        if not platform_shop_id:
            raise CommunicationError("Could not retrieve shop information")

        now = self.clock()
        expires_in = tokens.get("expires_in")
        shop = await self.shops.upsert(
            data["user_id"],
            str(platform_shop_id),
            shop_name=shop_info.get("name") or shop_info.get("shop_name", ""),
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token", ""),
            token_expires_at=(
                now + timedelta(seconds=int(expires_in))
                if expires_in
                else None
            ),
            status=SHOP_ACTIVE,
            updated_at=now,
        )
        logger.info("Shop %s connected for user %s", shop.id, data["user_id"])
        return shop


def _first_shop(data: dict[str, Any]) -> dict[str, Any] | None:
    if data.get("shop"):
        return data["shop"]
    shops = data.get("shops") or []
    return shops[0] if shops else None
