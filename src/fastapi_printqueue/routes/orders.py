"""Operator order endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from fastapi_printqueue.dependencies import get_services
from fastapi_printqueue.schemas import (
    CancelOrderRequest,
    OrderResponse,
    PrintJobResponse,
    PrintOrdersRequest,
    PrintOrdersResponse,
    UpdateOrderStatusRequest,
)

router = APIRouter()


@router.post("/orders/print", response_model=PrintOrdersResponse)
async def print_orders(
    body: PrintOrdersRequest,
    services=Depends(get_services),
) -> PrintOrdersResponse:
    """Queue one or more orders (at most 50) for printing."""
    result = await services.orders.send_to_print(
        body.order_ids,
        body.printer_id,
        body.user_id,
        template_id=body.template_id,
        priority=body.priority,
    )
    return PrintOrdersResponse(
        jobs=[PrintJobResponse.from_job(job) for job in result.jobs],
        errors=result.errors,
        success_count=result.success_count,
        total_requested=result.total_requested,
    )


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    services=Depends(get_services),
) -> OrderResponse:
    order = await services.orders.cancel_order(order_id, body.reason)
    return OrderResponse.from_order(order)


@router.put("/orders/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    services=Depends(get_services),
) -> OrderResponse:
    order = await services.orders.update_status(order_id, body.status)
    return OrderResponse.from_order(order)
