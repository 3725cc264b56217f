"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, Sentry,
lifespan wiring of the sync services, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

import structlog
from fastapi import FastAPI
from fastapi.requests import Request
from fastapi.responses import Response

from src.subject_sync.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.subject_sync.api.v1.router import router as v1_router
from src.subject_sync.config import Settings, get_settings
from src.subject_sync.core.background import BackgroundTaskRunner
from src.subject_sync.core.errors import UpstreamUnavailable
from src.subject_sync.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.subject_sync.core.redis import close_redis, get_redis_pool
from src.subject_sync.crm.adapter import RecordStore
from src.subject_sync.crm.pipedrive import PipedriveClient
from src.subject_sync.crm.retrying import RetryingClient
from src.subject_sync.reconcile import (
    ChangeFilter,
    CrewDirectory,
    DerivedTaskCreator,
    DriftPoller,
    ProcessedDealSet,
    ReconciliationEngine,
    SweepOrchestrator,
    TypeCatalog,
)


async def init_services(app: FastAPI, settings: Settings, store: RecordStore, redis_client) -> None:
    """Build the sync services around a record store and store them on app.state.

    Warms the type catalog; a failure there is logged and tolerated, since
    the allow-all policy never consults it.
    """
    log = structlog.get_logger(__name__)

    catalog = TypeCatalog()
    try:
        await catalog.warm(store)
    except UpstreamUnavailable as exc:
        log.warning("startup.catalog_warm_failed", error=str(exc))
        if not settings.RENAME_ALL_TYPES:
            log.warning("startup.allow_list_without_catalog", hint="no activity type will be in scope")

    crew = CrewDirectory(settings.CREW_MAP)
    scope = ChangeFilter.from_settings(
        rename_all=settings.RENAME_ALL_TYPES,
        allowed_labels=settings.ALLOWED_TYPE_LABELS,
        catalog=catalog,
    )
    engine = ReconciliationEngine(store=store, crew=crew, catalog=catalog, scope=scope)
    sweeper = SweepOrchestrator(engine)
    poller = DriftPoller(
        sweeper,
        interval_seconds=settings.POLL_INTERVAL_SECONDS,
        lookback=timedelta(minutes=settings.POLL_LOOKBACK_MINUTES),
        buffer=timedelta(seconds=settings.POLL_BUFFER_SECONDS),
        page_size=settings.POLL_PAGE_SIZE,
    )
    derived_tasks = DerivedTaskCreator(
        engine,
        ProcessedDealSet(redis_client, settings.SYNC_REDIS_PREFIX),
        type_label=settings.DERIVED_TASK_TYPE_LABEL,
        page_size=settings.POLL_PAGE_SIZE,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.redis = redis_client
    app.state.catalog = catalog
    app.state.engine = engine
    app.state.sweeper = sweeper
    app.state.poller = poller
    app.state.derived_tasks = derived_tasks
    app.state.task_runner = BackgroundTaskRunner()
    app.state.poller_started = False

    log.info(
        "startup.services_initialized",
        scope_policy=scope.policy.value,
        crews=len(crew),
        catalog_warm=catalog.is_warm,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: validate config, wire services, start the poller."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    # ConfigInvalid propagates: the process must not serve without these
    settings.require_runtime_config()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    pipedrive = PipedriveClient(
        api_token=settings.PIPEDRIVE_API_TOKEN,
        crew_field_key=settings.CREW_FIELD_KEY,
        base_url=settings.PIPEDRIVE_BASE_URL,
        timeout=settings.REQUEST_TIMEOUT,
    )
    store = RetryingClient(
        pipedrive,
        max_attempts=settings.RETRY_MAX_ATTEMPTS,
        base_delay=settings.RETRY_BASE_DELAY,
    )
    await init_services(app, settings, store, get_redis_pool())

    if settings.POLLER_ENABLED:
        app.state.poller.start()
        app.state.poller_started = True
    else:
        log.info("startup.poller_disabled")

    yield

    app.state.poller.stop()
    await app.state.task_runner.shutdown()
    await pipedrive.close()
    await close_redis()
    log.info("shutdown.complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Subject Sync",
        version="0.1.0",
        description="Keeps Pipedrive activity subjects in sync with their deal and crew",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
