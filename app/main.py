from fastapi import FastAPI

from app.config import Settings, get_settings
from app.core.logging import setup_logging
from app.database import Base, engine, ensure_sqlite_schema
from app.models import import_all_models
from app.routers import health_router, items_router, stock_router, transactions_router

setup_logging()
settings: Settings = get_settings()

import_all_models()
Base.metadata.create_all(bind=engine)
ensure_sqlite_schema()

app = FastAPI(title=settings.APP_NAME)

app.include_router(health_router)
app.include_router(stock_router)
app.include_router(transactions_router)
app.include_router(items_router)


__all__ = ["app"]
