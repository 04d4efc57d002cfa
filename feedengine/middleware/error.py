from datetime import datetime

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from feedengine.shared.utils import get_logger

logger = get_logger(__name__)


async def http_exception_handler(request: Request, exc: Exception):
    """Global exception handler for HTTP errors."""
    if isinstance(exc, HTTPException):
        status_code = exc.status_code
        message = exc.detail
    else:
        logger.error(f"Unhandled exception: {exc}", exc_info=exc)
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        message = "Internal Server Error"

    return JSONResponse(
        status_code=status_code,
        content={
            "statusCode": status_code,
            "timestamp": datetime.now().isoformat(),
            "path": request.url.path,
            "method": request.method,
            "message": message,
        },
    )
