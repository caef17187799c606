import asyncio
import logging
import math

import uvicorn

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from courtside.db.init_db import create_database
from courtside.db.base import Base
from courtside.db.session import engine, SessionLocal
from courtside.db.store import SqlBookingStore, SqlRuleSource
from courtside.core.config import settings
from courtside.api.v1.router import api_router
from courtside.scheduling.closures import ClosureResolver
from courtside.scheduling.errors import StoreUnavailable
from courtside.scheduling.lifecycle import BookingLifecycle
from courtside.schemas.common import RetryableError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def _sweep_loop() -> None:
    """Background task: drop lapsed payment holds and end elapsed closures."""
    store = SqlBookingStore(SessionLocal)
    lifecycle = BookingLifecycle(store, SqlRuleSource(SessionLocal))
    closures = ClosureResolver(store, lifecycle)

    while True:
        try:
            lifecycle.sweep_expired()
            closures.deactivate_elapsed()
        except StoreUnavailable:
            logger.warning("Store unavailable during sweep; retrying next round.")
        except Exception:
            logger.exception("Error during booking sweep.")
        await asyncio.sleep(settings.SWEEP_INTERVAL_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Ensure DB exists and create tables
    create_database()
    Base.metadata.create_all(bind=engine)

    sweep_task = None
    if settings.SWEEP_INTERVAL_SECONDS > 0:
        sweep_task = asyncio.create_task(_sweep_loop())
    yield

    # Shutdown: cancel background task
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass


from fastapi.middleware.cors import CORSMiddleware

app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    retry_after = max(1, math.ceil(settings.STORE_TIMEOUT_SECONDS))
    return JSONResponse(
        status_code=503,
        content=RetryableError(
            error="store_unavailable", message=str(exc), retry_after=retry_after
        ).model_dump(),
        headers={"Retry-After": str(retry_after)},
    )


app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
def read_root():
    return {"Hello": "Courtside"}


def run():
    uvicorn.run("courtside.main:app", host=settings.HOST, port=settings.PORT)
