import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from country_api import database
from country_api.config import settings
from country_api.errors import RefreshError
from country_api.limiter import close_rate_limiter, init_rate_limiter
from country_api.logging import RequestLoggingMiddleware, init_logging, setup_query_logging
from country_api.routes import countries, status

logger = logging.getLogger("country_api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await database.init_db()
    await init_rate_limiter(app)
    try:
        yield
    finally:
        await close_rate_limiter(app)
        await database.shutdown_db()


app = FastAPI(
    title="Country Currency & Exchange API",
    version="1.0.0",
    description=(
        "REST API to explore countries, currencies, population, and simple GDP estimates.\n\n"
        "Features:\n"
        "- On-demand refresh from Rest Countries and an exchange-rate provider\n"
        "- Filter by region and currency\n"
        "- Sort by name, population, or estimated GDP\n"
        "- Lightweight status and a generated summary image\n\n"
        "Rate limiting can be enabled via Redis (set REDIS_URL)."
    ),
    lifespan=lifespan,
)

# Initialize logging and middleware
init_logging()
app.add_middleware(RequestLoggingMiddleware)
setup_query_logging(database.engine.sync_engine)

app.include_router(countries.router, prefix="/countries", tags=["Countries"])
app.include_router(status.router, prefix="/status", tags=["Status"])


@app.get("/")
async def root():
    return {"message": "Country Currency & Exchange API running. Visit /docs for API documentation."}


# -------------------------------
# Unified error response handlers
# -------------------------------
@app.exception_handler(RefreshError)
async def refresh_exception_handler(request: Request, exc: RefreshError):
    logger.warning("Refresh failed: %s -> %s | %s", request.url.path, exc.status_code, exc)
    body = {"error": exc.error}
    details = exc.details()
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    logger.info(
        "HTTPException: %s %s -> %s | detail=%s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.detail,
    )
    body = {"error": exc.detail if isinstance(exc.detail, str) else "Error"}
    if isinstance(exc.detail, dict):
        body = {
            "error": exc.detail.get("error") or "Error",
            "details": exc.detail.get("details"),
        }
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("ValidationError: %s %s | errors=%s", request.method, request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def run() -> None:
    uvicorn.run("country_api.main:app", host=settings.HOST, port=settings.PORT)
