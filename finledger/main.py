import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from finledger.core.clock import get_zone
from finledger.core.config import Settings, get_settings
from finledger.db.cache import LocalCache
from finledger.db.dynamo import DynamoCollectionClient
from finledger.db.remote import HttpCollectionClient
from finledger.db.sync_store import CollectionClient, SyncStore
from finledger.routers import dashboard, health, notes, notifications, savings, signals, transactions
from finledger.routers import settings as settings_router
from finledger.utils.aggregation import AggregationEngine
from finledger.utils.analytics import AnalyticsEngine
from finledger.utils.dashboard import Dashboard
from finledger.utils.notifications import NotificationBus
from finledger.utils.savings_scheduler import SavingsScheduler
from finledger.utils.scheduler import BackgroundJobs

logger = logging.getLogger(__name__)


def build_remote(settings: Settings) -> CollectionClient:
    if settings.REMOTE_BACKEND == "dynamo":
        return DynamoCollectionClient(region=settings.DYNAMO_REGION, table_prefix=settings.DYNAMO_TABLE_PREFIX)
    if settings.REMOTE_BACKEND == "http":
        return HttpCollectionClient(
            settings.REMOTE_API_URL,
            prefix=settings.REMOTE_API_PREFIX,
            timeout=settings.REMOTE_TIMEOUT_SECONDS,
        )
    raise ValueError(f"Unknown REMOTE_BACKEND: {settings.REMOTE_BACKEND}")


def build_dashboard(
    settings: Settings,
    remote: Optional[CollectionClient] = None,
    cache: Optional[LocalCache] = None,
) -> Dashboard:
    zone = get_zone(settings.TIMEZONE)
    store = SyncStore(remote or build_remote(settings), cache or LocalCache(Path(settings.CACHE_PATH)))
    aggregation = AggregationEngine(zone)
    return Dashboard(
        store=store,
        savings=SavingsScheduler(annual_rate=settings.RD_ANNUAL_RATE, zone=zone),
        aggregation=aggregation,
        analytics=AnalyticsEngine(aggregation),
        notifications=NotificationBus(),
        budget_ratio=settings.BUDGET_AUTO_RATIO,
    )


def create_app(
    settings: Optional[Settings] = None,
    remote: Optional[CollectionClient] = None,
    cache: Optional[LocalCache] = None,
    start_jobs: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ledger = build_dashboard(settings, remote, cache)
        app.state.settings = settings
        app.state.dashboard = ledger
        app.state.jobs = None

        # Startup: first refresh, then background jobs
        result = await ledger.refresh()
        logger.info("Initial refresh served from %s", result.state.source)
        await ledger.fetch_notes()
        if start_jobs:
            logger.info("Starting scheduler...")
            app.state.jobs = BackgroundJobs(
                ledger,
                refresh_seconds=settings.REFRESH_INTERVAL_SECONDS,
                sweep_minutes=settings.EXPIRY_SWEEP_MINUTES,
            )
            app.state.jobs.start()
        yield
        # Shutdown: stop jobs, let in-flight mutations settle
        if app.state.jobs is not None:
            logger.info("Stopping scheduler...")
            app.state.jobs.stop()
        await ledger.drain()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        return {"message": f"Welcome to {settings.PROJECT_NAME} API"}

    prefix = settings.API_PREFIX
    app.include_router(health.router, prefix=prefix, tags=["Health"])
    app.include_router(transactions.router, prefix=f"{prefix}/transactions", tags=["Transactions"])
    app.include_router(savings.router, prefix=f"{prefix}/savings", tags=["Savings"])
    app.include_router(notes.router, prefix=f"{prefix}/notes", tags=["Notes"])
    app.include_router(dashboard.router, prefix=f"{prefix}/dashboard", tags=["Dashboard"])
    app.include_router(signals.router, prefix=f"{prefix}/signals", tags=["Signals"])
    app.include_router(notifications.router, prefix=f"{prefix}/notifications", tags=["Notifications"])
    app.include_router(settings_router.router, prefix=f"{prefix}/settings", tags=["Settings"])
    return app


app = create_app()
