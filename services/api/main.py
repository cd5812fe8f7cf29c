"""API service for workflow editing, versioning and templates."""

import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI
from services.api.infra.redis_store import RedisStore
from services.api.routes.workflow import get_store, router as workflow_router
from services.api.middleware import CorrelationIdMiddleware
from shared.exceptions import PersistenceError
from shared.logging_config import setup_logging

setup_logging("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.info("API starting")
    yield
    get_store().close()
    logging.info("API stopped")


app = FastAPI(title="Workflow Editor API", version="1.0.0", lifespan=lifespan)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(workflow_router, tags=["Workflows"])


@app.get("/")
async def root():
    return {"service": "api", "status": "running"}


@app.get("/health")
async def health(store: RedisStore = Depends(get_store)):
    try:
        store.ping()
    except PersistenceError:
        return {"status": "degraded", "store": "unavailable"}
    return {"status": "healthy", "store": "ok"}
