"""Marketplace webhook endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from fastapi_printqueue.dependencies import get_services
from fastapi_printqueue.schemas import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter()


async def _ingest(services, raw_body: bytes, headers: dict[str, str]) -> None:
    try:
        await services.ingestion.ingest_webhook(raw_body, headers)
    except Exception:
        logger.exception("Webhook ingestion failed")


@router.post("/webhooks/marketplace/orders", response_model=WebhookAck)
async def marketplace_orders(
    request: Request,
    background_tasks: BackgroundTasks,
    services=Depends(get_services),
) -> WebhookAck:
    """Acknowledge a verified delivery and ingest it after responding.

    Senders only see a signature failure; every other outcome is logged
    server-side so the marketplace never retries a delivery we accepted.
    """
    raw_body = await request.body()
    headers = dict(request.headers)
    services.ingestion.verify_webhook(raw_body, headers)
    background_tasks.add_task(_ingest, services, raw_body, headers)
    return WebhookAck()
