# sidebyside/core/logging_middleware.py
from fastapi import Request
from sidebyside.core.logger import logger
import time


async def log_requests(request: Request, call_next):
    """Log each request with status and elapsed time"""

    started = time.perf_counter()
    client = request.client.host if request.client else "-"
    route = f"{request.method} {request.url.path}"

    logger.debug(f"→ {route} from {client}")

    try:
        response = await call_next(request)
    except Exception as e:
        elapsed = (time.perf_counter() - started) * 1000
        logger.error(f"✗ {route} failed after {elapsed:.2f}ms: {e}")
        logger.exception("Unhandled request error")
        raise

    elapsed = (time.perf_counter() - started) * 1000
    message = f"← {route} {response.status_code} ({elapsed:.2f}ms)"

    # 5xx are logged by the error handler as well
    if response.status_code >= 500:
        logger.error(message)
    elif response.status_code >= 400:
        logger.warning(message)
    else:
        logger.info(message)

    return response
