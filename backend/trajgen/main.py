import logging

from fastapi import FastAPI, WebSocket, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trajgen.core.config import settings
from trajgen.core.database import init_db, close_db
from trajgen.core.errors import (
    TrajgenError, RoutingFailure, GenerationFailure, PersistenceFailure, InsufficientInputFailure, NotFoundError,
)
from trajgen.core.logging_config import setup_logging
from trajgen.api.jobs import BatchJobRegistry
from trajgen.api.routes import router as api_router
from trajgen.api.websocket import ws_manager

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)
app.state.batch_jobs = BatchJobRegistry()

# CORS
# Explicit CORS origins for dev, plus optional production origins via env (CORS_ORIGINS)
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.CORS_ORIGINS:
    extra = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
    allowed_origins.extend(extra)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routes
app.include_router(api_router)

ERROR_STATUS = {
    NotFoundError: 404,
    InsufficientInputFailure: 400,
    GenerationFailure: 400,
    RoutingFailure: 502,
    PersistenceFailure: 500,
}


@app.exception_handler(TrajgenError)
async def trajgen_error_handler(request: Request, exc: TrajgenError):
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    await init_db()


@app.on_event("shutdown")
async def shutdown_event():
    """Close database on shutdown."""
    await close_db()


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/version")
async def version():
    return {"name": settings.APP_NAME, "version": settings.APP_VERSION}


@app.websocket("/ws/batch")
async def websocket_batch(websocket: WebSocket, jobs: str = Query(...)):
    """
    WebSocket endpoint for batch progress.

    Usage: ws://localhost:8000/ws/batch?jobs=1,2
    """
    job_ids = [int(j) for j in jobs.split(",") if j.strip().isdigit()]

    if not job_ids:
        await websocket.close(code=1008, reason="No valid job IDs")
        return

    await ws_manager.connect(websocket, job_ids)

    try:
        while True:
            # Keep connection alive; client messages are ignored
            await websocket.receive_text()
    except Exception as e:
        ws_manager.disconnect(websocket)
        logger.info("WebSocket closed: %s", e)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("trajgen.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
