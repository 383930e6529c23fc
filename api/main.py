import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core import db, settings
from core.log import configure_logging
from datasets.errors import DatasetError
from datasets.repository import PostgresDatasetStore
from datasets.router import router as datasets_router
from datasets.store import MemoryDatasetStore, configure_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    backend = settings.dataset_store_backend()
    if backend == "postgres":
        # Initialize the DB pool once per process.
        await db.init_pool()
        configure_store(PostgresDatasetStore())
    else:
        configure_store(MemoryDatasetStore())
    logger.info("startup dataset_store=%s serve_base_url=%s", backend, settings.serve_base_url())
    try:
        yield
    finally:
        configure_store(None)
        if backend == "postgres":
            await db.close_pool()


app = FastAPI(lifespan=lifespan)

# Allow local frontend dev server to call this API from the browser.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(datasets_router, tags=["datasets"])


@app.exception_handler(DatasetError)
async def dataset_error_handler(request: Request, exc: DatasetError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("dataset_error path=%s error=%s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(db.StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: db.StoreUnavailable) -> JSONResponse:
    logger.error("store_unavailable path=%s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content={"message": "Dataset store is unavailable."})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_error path=%s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"message": "Internal server error."})


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/")
def root() -> dict:
    return {"message": "dataset serving api"}
