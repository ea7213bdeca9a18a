# marketplace/main.py
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api.routes import get_lifecycle_engine, router as api_router
from .config import get_config
from .db import Base, SessionLocal, engine
from .errors import MarketplaceError
from .scheduler import start_scheduler
from .sweep import SweepJob
from .utils import logger
from . import models  # noqa: F401 ensure models are imported so tables are known

# create FastAPI instance
app = FastAPI(title="marketplace")
app.include_router(api_router)

_scheduler = None


@app.exception_handler(MarketplaceError)
async def handle_marketplace_error(request: Request, exc: MarketplaceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.on_event("startup")
def on_startup():
    global _scheduler
    # Ensure database tables are created on startup
    Base.metadata.create_all(bind=engine)
    cfg = get_config()
    cfg.validate()
    if cfg.sweep_enabled:
        job = SweepJob(SessionLocal, get_lifecycle_engine(), batch_timeout=cfg.sweep_batch_timeout)
        _scheduler = start_scheduler(job, cfg)


@app.on_event("shutdown")
def on_shutdown():
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
