"""Order-to-print pipeline for FastAPI: public API."""

from typing import TYPE_CHECKING

__version__ = "0.1.0"

__all__ = [
    "CompletionHandler",
    "JobDispatcher",
    "OrderIngestionAdapter",
    "PrintQueue",
    "PrintQueueConfig",
    "PrintQueueException",
    "PrinterLivenessTracker",
    "__version__",
    "create_app",
    "create_printqueue_router",
    "register_exception_handlers",
]

if TYPE_CHECKING:
    from fastapi_printqueue.app import create_app
    from fastapi_printqueue.completion import CompletionHandler
    from fastapi_printqueue.config import PrintQueueConfig
    from fastapi_printqueue.dispatcher import JobDispatcher
    from fastapi_printqueue.exceptions import (
        PrintQueueException,
        register_exception_handlers,
    )
    from fastapi_printqueue.ingestion import OrderIngestionAdapter
    from fastapi_printqueue.liveness import PrinterLivenessTracker
    from fastapi_printqueue.queue import PrintQueue
    from fastapi_printqueue.router import create_printqueue_router


_LAZY = {
    "CompletionHandler": "fastapi_printqueue.completion",
    "JobDispatcher": "fastapi_printqueue.dispatcher",
    "OrderIngestionAdapter": "fastapi_printqueue.ingestion",
    "PrintQueue": "fastapi_printqueue.queue",
    "PrintQueueConfig": "fastapi_printqueue.config",
    "PrintQueueException": "fastapi_printqueue.exceptions",
    "PrinterLivenessTracker": "fastapi_printqueue.liveness",
    "create_app": "fastapi_printqueue.app",
    "create_printqueue_router": "fastapi_printqueue.router",
    "register_exception_handlers": "fastapi_printqueue.exceptions",
}


def __getattr__(name: str):
    # Lazy imports to avoid loading all submodules on package import.
    if name in _LAZY:
        from importlib import import_module

        return getattr(import_module(_LAZY[name]), name)
    raise AttributeError(
        f"module 'fastapi_printqueue' has no attribute {name!r}"
    )
