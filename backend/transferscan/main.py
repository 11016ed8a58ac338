import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from transferscan.api.v1.scan import router as scan_router
from transferscan.core.config import get_settings
from transferscan.core.dependencies import get_scan_services

settings = get_settings()

logger = logging.getLogger(__name__)

app = FastAPI(
    title="TransferScan API",
    version="0.1.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)


@app.on_event("startup")
async def _load_bank_registry():
    if settings.enable_scan_api:
        await get_scan_services().start()


app.include_router(scan_router, prefix="/api/v1", tags=["scan"])


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception")
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


@app.get("/health")
async def health():
    return {"status": "ok"}
