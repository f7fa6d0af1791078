"""Wiring of repositories, services and sweeps from one config."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fastapi_printqueue.channel import WebSocketChannelHub
from fastapi_printqueue.clock import Clock, utcnow
from fastapi_printqueue.completion import CompletionHandler
from fastapi_printqueue.config import PrintQueueConfig
from fastapi_printqueue.contrib.sqlalchemy.history_store import (
    SQLAlchemyHistoryStore,
)
from fastapi_printqueue.contrib.sqlalchemy.repository import (
    SQLAlchemyOrderRepository,
    SQLAlchemyPrinterRepository,
    SQLAlchemyPrintJobRepository,
    SQLAlchemyShopRepository,
)
from fastapi_printqueue.dispatcher import JobDispatcher
from fastapi_printqueue.history import PrintHistoryLogger
from fastapi_printqueue.ingestion import OrderIngestionAdapter, OrderPoller
from fastapi_printqueue.kvstore import InMemoryKeyValueStore, KeyValueStore
from fastapi_printqueue.liveness import PrinterLivenessTracker
from fastapi_printqueue.marketplace import MarketplaceClient
from fastapi_printqueue.orders import OrderService
from fastapi_printqueue.protocols import ShopRepository
from fastapi_printqueue.queue import PrintQueue
from fastapi_printqueue.shops import ShopConnector
from fastapi_printqueue.workers import PeriodicTask, SweepRunner


@dataclass
class PrintQueueServices:
    """Everything request handlers and sweeps need, built once per process."""

    config: PrintQueueConfig
    shops: ShopRepository
    history: PrintHistoryLogger
    queue: PrintQueue
    liveness: PrinterLivenessTracker
    completion: CompletionHandler
    channel: WebSocketChannelHub
    dispatcher: JobDispatcher
    marketplace: MarketplaceClient
    ingestion: OrderIngestionAdapter
    poller: OrderPoller
    orders: OrderService
    connector: ShopConnector
    kv: KeyValueStore


def build_services(
    config: PrintQueueConfig,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    marketplace: MarketplaceClient | None = None,
    channel: WebSocketChannelHub | None = None,
    kv: KeyValueStore | None = None,
    clock: Clock = utcnow,
) -> PrintQueueServices:
    shops = SQLAlchemyShopRepository(session_factory)
    order_repo = SQLAlchemyOrderRepository(session_factory)
    jobs = SQLAlchemyPrintJobRepository(session_factory)
    printers = SQLAlchemyPrinterRepository(session_factory)
    marketplace = marketplace or MarketplaceClient(config)
    channel = channel or WebSocketChannelHub()
    kv = kv or InMemoryKeyValueStore(clock)

    history = PrintHistoryLogger(
        SQLAlchemyHistoryStore(session_factory), clock
    )
    queue = PrintQueue(
        jobs, history, default_max_retries=config.max_retries, clock=clock
    )
    liveness = PrinterLivenessTracker(
        printers,
        jobs,
        dispatch_window=config.dispatch_liveness,
        display_window=config.display_liveness,
        clock=clock,
    )
    completion = CompletionHandler(
        queue, order_repo, retry_backoff=config.retry_backoff, clock=clock
    )
    dispatcher = JobDispatcher(
        queue,
        liveness,
        channel,
        completion,
        batch_size=config.dispatch_batch_size,
        inter_job_delay=config.inter_job_delay_seconds,
        push_timeout=config.push_timeout_seconds,
    )
    ingestion = OrderIngestionAdapter(
        order_repo,
        shops,
        queue,
        marketplace,
        page_size=config.poll_page_size,
        max_pages=config.poll_max_pages,
        webhook_tolerance=config.webhook_tolerance,
        clock=clock,
    )
    return PrintQueueServices(
        config=config,
        shops=shops,
        history=history,
        queue=queue,
        liveness=liveness,
        completion=completion,
        channel=channel,
        dispatcher=dispatcher,
        marketplace=marketplace,
        ingestion=ingestion,
        poller=OrderPoller(ingestion, shops, marketplace, clock=clock),
        orders=OrderService(order_repo, shops, printers, queue, clock=clock),
        connector=ShopConnector(
            shops,
            marketplace,
            kv,
            state_ttl=config.oauth_state_ttl,
            clock=clock,
        ),
        kv=kv,
    )


def build_sweeps(services: PrintQueueServices) -> SweepRunner:
    config = services.config
    return SweepRunner(
        [
            PeriodicTask(
                "dispatch-sweep",
                config.dispatch_interval_seconds,
                services.dispatcher.run_once,
            ),
            PeriodicTask(
                "stale-sweep",
                config.stale_sweep_interval_seconds,
                lambda: services.completion.sweep_stale(config.stale_after),
            ),
            PeriodicTask(
                "liveness-sweep",
                config.liveness_sweep_interval_seconds,
                services.liveness.sweep,
            ),
            PeriodicTask(
                "order-poller",
                config.poll_interval_seconds,
                services.poller.poll_all,
                initial_delay=5,
            ),
            PeriodicTask(
                "retention-cleanup",
                config.cleanup_interval_seconds,
                lambda: services.queue.cleanup(config.retention_days),
            ),
        ]
    )
