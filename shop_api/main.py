# shop_api/main.py
from contextlib import asynccontextmanager
from html import escape
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, Request, status as fastapi_status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from loguru import logger
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import ValidationError
from pymongo.errors import PyMongoError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from shop_api.api.api import api_router
from shop_api.core import config, metrics
from shop_api.core.errors import error_body, validation_error_body
from shop_api.core.rate_limiter import get_rate_limiter, rate_limit_exception_handler
from shop_api.core.sequence import SequenceAllocator
from shop_api.db.database import DOCUMENT_MODELS, MongoStore, close_db, init_db
from shop_api.db.seed import seed_sample_data
from shop_api.middleware.logging import RequestLoggingMiddleware
from shop_api.models.counter import SequenceCounter

AVAILABLE_ENDPOINTS = [
    "GET /",
    "GET /version",
    "GET /health",
    "GET /api/products",
    "GET /api/products/:id (integer)",
    "GET /api/products/category/:category",
    "POST /api/products",
    "PUT /api/products/:id",
    "DELETE /api/products/:id",
    "GET /api/items",
    "GET /api/items/:id (integer)",
    "POST /api/items",
    "PUT /api/items/:id",
    "PATCH /api/items/:id",
    "DELETE /api/items/:id",
]

Connector = Callable[[], Awaitable[MongoStore]]


def _landing_page() -> str:
    links = "\n".join(
        f'            <li><code>{escape(endpoint)}</code></li>' for endpoint in AVAILABLE_ENDPOINTS
    )
    return f"""<!DOCTYPE html>
<html>
<head>
    <title>Shop API</title>
    <style>
        body {{ font-family: Arial, sans-serif; margin: 40px; }}
        h1 {{ color: #333; }}
        ul {{ list-style-type: none; padding: 0; }}
        li {{ margin: 8px 0; }}
        code {{ background: #f4f4f4; padding: 2px 5px; border-radius: 3px; }}
        .environment {{ background: #28a745; color: white; padding: 5px 10px; border-radius: 3px; display: inline-block; }}
    </style>
</head>
<body>
    <div class="environment">Environment: {escape(config.APP_ENV)}</div>
    <h1>Products &amp; Items API with Integer IDs</h1>
    <p>Every record is addressed by an integer <code>id</code> instead of a MongoDB ObjectId.
    Create, update and delete requests need the <code>x-api-key</code> header.</p>
    <ul>
{links}
    </ul>
    <p>Example POST body: <code>{{"name": "New Product", "price": 120, "category": "Electronics"}}</code></p>
    <p>Database: {escape(config.DB_NAME)}</p>
</body>
</html>"""


def create_app(connect: Connector = init_db, seed_samples: Optional[bool] = None) -> FastAPI:
    """
    Build the application.

    ``connect`` opens the database at startup (swapped out in tests);
    sample data is loaded in development unless ``seed_samples`` says otherwise.
    """
    if seed_samples is None:
        seed_samples = config.APP_ENV == "development"

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config.setup_logging()
        logger.info(f"Application startup ({config.APP_ENV})...")
        sequences: SequenceAllocator = app.state.sequences
        try:
            store = await connect()
        except PyMongoError as e:
            sequences.mark_failed(f"database connection failed: {e!r}")
            raise

        try:
            sequences.bind(store.counters, store.sequence_collections())
            for model in DOCUMENT_MODELS:
                await sequences.ensure(model.Settings.sequence_key, 1)

            if seed_samples:
                await seed_sample_data(store, sequences)
            else:
                logger.info("Skipping sample data.")
        except Exception:
            logger.critical("Startup failed after connecting; closing the database client.")
            await close_db(store)
            raise

        app.state.store = store
        logger.info("Database ready; accepting requests.")
        yield
        logger.info("Application shutdown...")
        app.state.store = None
        await close_db(store)

    app = FastAPI(
        title="Shop API",
        description="Products and items with integer public IDs, backed by MongoDB.",
        version=config.APP_VERSION,
        lifespan=lifespan,
    )
    # Handlers see 503 until the lifespan has connected
    app.state.store = None
    app.state.sequences = SequenceAllocator()

    # --- Error handling ---
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation Error on {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=fastapi_status.HTTP_400_BAD_REQUEST,
            content=validation_error_body(exc.errors()),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and not isinstance(exc.detail, dict):
            # no route matched
            logger.info(f"Unknown endpoint: {request.method} {request.url.path}")
            return JSONResponse(
                status_code=404,
                content={
                    "success": False,
                    "error": "API endpoint not found",
                    "message": f"The requested endpoint {request.method} {request.url.path} does not exist",
                    "availableEndpoints": AVAILABLE_ENDPOINTS,
                },
            )
        logger.warning(f"HTTP Exception: Status={exc.status_code}, Detail={exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.opt(exception=exc).error(f"Unhandled Exception: {exc!r}")
        return JSONResponse(
            status_code=fastapi_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Internal server error", "message": "An unexpected error occurred"},
        )

    # --- Middleware ---
    app.add_middleware(RequestLoggingMiddleware)
    app.state.limiter = get_rate_limiter()
    app.add_middleware(GZipMiddleware, minimum_size=500)

    app.include_router(api_router)

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    async def read_root():
        return _landing_page()

    @app.get("/version")
    async def read_version():
        return {"version": config.APP_VERSION, "updatedAt": config.APP_UPDATED_AT}

    @app.get("/ping-mongodb")
    async def ping_mongodb(request: Request):
        store: Optional[MongoStore] = request.app.state.store
        if store is None:
            return JSONResponse(
                status_code=503,
                content={"success": False, "error": "Service Unavailable", "message": "Database is initializing."},
            )
        try:
            await store.ping()
        except PyMongoError as e:
            logger.error(f"MongoDB ping failed: {e!r}")
            return JSONResponse(
                status_code=503,
                content={"success": False, "error": "Service Unavailable", "message": "MongoDB connection failed."},
            )
        return {"status": "success", "message": "MongoDB connection is healthy."}

    @app.get("/health")
    async def health(request: Request):
        store: Optional[MongoStore] = request.app.state.store
        sequences: SequenceAllocator = request.app.state.sequences
        database = "initializing"
        counters = {}
        corrupt = []
        if store is not None:
            try:
                await store.ping()
                docs = await store.counters.find({}).to_list(length=100)
                for doc in docs:
                    try:
                        counter = SequenceCounter.model_validate(doc)
                    except ValidationError as e:
                        logger.error(f"Corrupt counter document {doc!r}: {e.error_count()} error(s)")
                        corrupt.append(str(doc.get("_id")))
                        continue
                    counters[counter.key] = counter.sequence_value
                database = "ok"
            except PyMongoError as e:
                logger.error(f"Health check database error: {e!r}")
                database = "error"

        healthy = database == "ok" and sequences.ready and not corrupt
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "ok" if healthy else "degraded",
                "environment": config.APP_ENV,
                "database": database,
                "sequenceAllocator": sequences.state.value,
                "counters": counters,
                "corruptCounters": corrupt,
            },
        )

    @app.get("/metrics", include_in_schema=False)
    async def read_metrics():
        return Response(content=generate_latest(metrics.REGISTRY), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("shop_api.main:app", host="0.0.0.0", port=config.PORT)
