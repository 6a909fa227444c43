# main.py
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sidebyside.config import settings
from sidebyside.database import Base, engine
from sidebyside.api.routes import auth, images, votings
from sidebyside.core.logging_middleware import log_requests
from sidebyside.core.logger import logger
from sidebyside.services.cleanup_service import cleanup_scheduler
from sidebyside.services.rate_limit_service import RateLimitExceeded

app = FastAPI(
    title=settings.app_name,
    debug=settings.debug
)

# ===== Logging middleware (outermost) =====
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    return await log_requests(request, call_next)
# ==========================================

# Request size limit
MAX_REQUEST_SIZE = 320 * 1024 * 1024

@app.middleware("http")
async def limit_upload_size(request: Request, call_next):
    """Reject oversized bodies before they are read"""
    if request.method in ["POST", "PUT", "PATCH"]:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_SIZE:
            return JSONResponse(
                status_code=413,
                content={"error": f"Request is too large. Max: {MAX_REQUEST_SIZE // 1024 // 1024}MB"}
            )
    return await call_next(request)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*", "X-Figma-Plugin"],
)

# ===== Error responses: {"error": ...} =====
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    content = {"error": exc.detail}
    if isinstance(exc, RateLimitExceeded):
        content["retryAfter"] = exc.retry_after
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"{location}: {errors[0].get('msg')}" if location else errors[0].get("msg", message)
    return JSONResponse(status_code=400, content={"error": message})

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})
# ===========================================

# Routers
app.include_router(auth.router)
app.include_router(votings.router)
app.include_router(images.router)


# ===== Startup / shutdown =====
@app.on_event("startup")
async def startup_event():
    if settings.create_tables_on_startup:
        Base.metadata.create_all(bind=engine)
    logger.info(f"Side-by-Side API started ({settings.server_mode}, auth: {settings.auth_mode})")
    cleanup_scheduler.start()

@app.on_event("shutdown")
async def shutdown_event():
    await cleanup_scheduler.stop()
    logger.info("Side-by-Side API stopped")
# ==============================

@app.get("/health")
def health_check():
    """Health check"""
    return {
        "status": "healthy",
        "service": settings.app_name
    }
