"""Shop connection and manual polling endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from fastapi_printqueue.dependencies import get_services
from fastapi_printqueue.schemas import (
    ConnectShopResponse,
    IngestReportResponse,
    PollResponse,
    ShopResponse,
)

router = APIRouter()


@router.get("/shops/connect", response_model=ConnectShopResponse)
async def connect_shop(
    user_id: str,
    services=Depends(get_services),
) -> ConnectShopResponse:
    """Start the marketplace authorization flow for ``user_id``."""
    url, state = await services.connector.begin(user_id)
    return ConnectShopResponse(authorization_url=url, state=state)


@router.get("/shops/callback", response_model=ShopResponse)
async def shop_callback(
    code: str,
    state: str,
    services=Depends(get_services),
) -> ShopResponse:
    """OAuth redirect target; the state is accepted once."""
    shop = await services.connector.complete(code, state)
    return ShopResponse.from_shop(shop)


@router.post("/shops/{shop_id}/poll", response_model=PollResponse)
async def poll_shop(
    shop_id: str,
    services=Depends(get_services),
) -> PollResponse:
    outcome = await services.poller.poll_shop_manually(shop_id)
    report = None
    if outcome.report is not None:
        report = IngestReportResponse(
            created=outcome.report.created,
            updated=outcome.report.updated,
            duplicate=outcome.report.duplicate,
            rejected=outcome.report.rejected,
            failed=outcome.report.failed,
            errors=outcome.report.errors,
        )
    return PollResponse(
        shop_id=outcome.shop_id,
        success=outcome.success,
        report=report,
        error=outcome.error,
    )
