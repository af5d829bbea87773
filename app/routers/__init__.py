from app.routers.health import router as health_router
from app.routers.items import router as items_router
from app.routers.stock import router as stock_router
from app.routers.transactions import router as transactions_router

__all__ = [
    "health_router",
    "items_router",
    "stock_router",
    "transactions_router",
]
