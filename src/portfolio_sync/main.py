"""Main module for the portfolio synchronization service."""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from portfolio_sync.config import get_settings
from portfolio_sync.container import init_container
from portfolio_sync.db.sessions import init_db
from portfolio_sync.routers import (credentials_router, imports_router,
                                    sync_router)
from portfolio_sync.tasks import shutdown_scheduler, start_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Build the container and tables at startup; stop jobs and close clients on shutdown."""
    container = getattr(fastapi_app.state, "container", None) or init_container()
    fastapi_app.state.container = container
    settings = container.settings()

    init_db(container.db_engine())
    if settings.scheduler_enabled:
        start_scheduler(
            container.sync_service(),
            hour=settings.sync_cron_hour,
            fund_prices=container.fund_price_service(),
        )

    yield

    shutdown_scheduler()
    # Close broker client resources (httpx clients)
    for client in container.broker_clients().values():
        try:
            await client.close()
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Error closing client %s: %s", type(client).__name__, exc)
    await container.eodhd_client().close()


app = FastAPI(
    title="Portfolio Sync",
    description="Synchronizes external broker accounts and fund prices into a unified portfolio",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(credentials_router)
app.include_router(sync_router)
app.include_router(imports_router)


@app.get("/")
def health():
    """Return health check status."""
    return {"status": "ok"}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run():
    """Run the server (uvicorn). Entry point of `portfolio-sync`."""
    configure_logging(get_settings().log_level)
    uvicorn.run("portfolio_sync.main:app", host="127.0.0.1", port=8001)
