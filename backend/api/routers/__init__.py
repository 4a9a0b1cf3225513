# API routers
from .tier1 import router as tier1_router
from .ingestion import router as ingestion_router
from .review_queue import router as review_queue_router

__all__ = [
    "tier1_router",
    "ingestion_router",
    "review_queue_router",
]
