from fastapi import FastAPI, Depends, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from invoicehub.config import settings
from invoicehub.database import init_db, close_db, get_db
from invoicehub.logging_config import setup_logging
from invoicehub.services.cache import cache
from invoicehub.middleware.correlation import CorrelationIdMiddleware

# Import models so they are registered with Base.metadata
import invoicehub.models  # noqa: F401

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("starting_invoicehub", env=settings.ENVIRONMENT, plan=settings.DEFAULT_PLAN)
    await init_db()
    yield
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers: every error leaves as
# {"error": {"code": "...", "message": "...", "details": ...}}
# ---------------------------------------------------------------------------

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, str):
        detail = {"error": {"code": "HTTP_ERROR", "message": detail}}
    elif isinstance(detail, dict) and "error" not in detail:
        detail = {"error": detail}
    return JSONResponse(status_code=exc.status_code, content=detail, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = {}
    for err in exc.errors():
        path = ".".join(str(part) for part in err["loc"])
        details.setdefault(path, err["msg"])
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": details,
            }
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "Something went wrong. Please try again.",
            }
        },
    )


app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Request-ID"],
    expose_headers=["X-Request-ID", "X-View-Version"],
)


@app.get("/health", tags=["System"])
async def health(response: Response, db: AsyncSession = Depends(get_db)):
    health_status = {"status": "healthy", "version": settings.APP_VERSION, "checks": {}}

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["db"] = "ok"
    except Exception as e:
        logger.error("health_check_db_failed", error=str(e))
        health_status["checks"]["db"] = "error"
        health_status["status"] = "unhealthy"

    # The cache only carries view versions and grid state; losing it degrades, not fails.
    if not cache.configured:
        health_status["checks"]["cache"] = "not_configured"
    else:
        try:
            await cache.ping()
            health_status["checks"]["cache"] = "ok"
        except Exception as e:
            logger.error("health_check_cache_failed", error=str(e))
            health_status["checks"]["cache"] = "error"
            health_status["status"] = "degraded"

    if health_status["status"] == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return health_status


# --- Routers ---
from invoicehub.routes.invoices import router as invoices_router  # noqa: E402
from invoicehub.routes.billing import router as billing_router  # noqa: E402
from invoicehub.routes.grid_state import router as grid_state_router  # noqa: E402
from invoicehub.routes.commands import router as commands_router  # noqa: E402

app.include_router(invoices_router, prefix="/api/v1/invoices", tags=["Invoices"])
app.include_router(billing_router, prefix="/api/v1/billing", tags=["Billing"])
app.include_router(grid_state_router, prefix="/api/v1/grid-state", tags=["Grid State"])
app.include_router(commands_router, prefix="/api/v1/commands", tags=["Commands"])
