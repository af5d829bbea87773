from typing import Optional

from fastapi import Header, HTTPException

from app.config import get_settings
from app.core.errors import CascadeInterruptedError, StockError
from app.core.security import authenticate_request
from app.database.session import get_db


def require_auth(
    api_key: Optional[str] = Header(None, alias=get_settings().API_KEY_HEADER),
    api_key_alt: Optional[str] = Header(None, alias="api-key"),
    authorization: Optional[str] = Header(None),
):
    api_key_value = api_key or api_key_alt
    return authenticate_request(
        api_key=api_key_value,
        authorization=authorization,
        require_auth=True,
    )


def cascade_failure_detail(exc: CascadeInterruptedError) -> dict:
    return {
        "message": str(exc),
        "failed_date": exc.failed_date.isoformat() if exc.failed_date else None,
        "updates": list(exc.updates),
    }


def stock_http_error(exc: StockError) -> HTTPException:
    if isinstance(exc, CascadeInterruptedError):
        return HTTPException(status_code=exc.status_code, detail=cascade_failure_detail(exc))
    return HTTPException(status_code=exc.status_code, detail=str(exc))


__all__ = ["cascade_failure_detail", "get_db", "require_auth", "stock_http_error"]
