"""FastAPI application: per-project LLM model settings backed by a live provider catalog."""
import functools
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from modelhub.api import models, projects, titles
from modelhub.config import get_settings
from modelhub.errors import ModelHubError
from modelhub.llm.catalog import InMemoryCatalogCache, RedisCatalogCache, fetch_catalog
from modelhub.llm.openai_compat import OpenAICompatibleProvider
from modelhub.llm.openrouter import OpenRouterProvider
from modelhub.llm.registry import llm_registry
from modelhub.redis_client import close_redis, init_redis
from modelhub.services.model_resolver import ModelResolver
from modelhub.services.model_sync import ModelSyncScheduler
from modelhub.storage.db import async_session_factory, close_db, init_db

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    # Register LLM providers (add more here for new backends)
    llm_registry.register(
        OpenRouterProvider(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            timeout=settings.catalog_fetch_timeout_seconds,
        )
    )
    if settings.openai_api_key:
        llm_registry.register(
            OpenAICompatibleProvider(
                "openai",
                settings.openai_base_url,
                settings.openai_api_key,
                display_name="OpenAI",
                timeout=settings.catalog_fetch_timeout_seconds,
            )
        )
    # PostgreSQL
    await init_db()
    # Redis (optional: catalog shared between workers)
    redis = await init_redis(settings.redis_url)

    loader = functools.partial(fetch_catalog, llm_registry)
    if redis is not None:
        catalog_cache = RedisCatalogCache(
            redis, loader, settings.catalog_cache_ttl_seconds, key=settings.catalog_redis_key
        )
    else:
        catalog_cache = InMemoryCatalogCache(loader, settings.catalog_cache_ttl_seconds)
    model_sync = ModelSyncScheduler(async_session_factory)
    app.state.catalog_cache = catalog_cache
    app.state.model_sync = model_sync
    app.state.model_resolver = ModelResolver(catalog_cache, model_sync, settings.default_model_id)
    try:
        yield
    finally:
        await model_sync.drain()
        await close_redis()
        await close_db()


app = FastAPI(
    title="ModelHub API",
    description="Per-project LLM model selection for the troubleshooting agent",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


@app.exception_handler(ModelHubError)
async def model_hub_error_handler(request: Request, exc: ModelHubError):
    """4xx errors are shown verbatim; 5xx details stay in the log."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return 500 as JSON so CORS middleware adds headers; let HTTPException through."""
    if isinstance(exc, HTTPException):
        raise exc
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


app.include_router(projects.router)
app.include_router(models.router)
app.include_router(titles.router)


@app.get("/health")
def health():
    return {
        "status": "ok",
        "providers": [pid for pid, _ in llm_registry.list_available_providers()],
    }
