"""API routers.

Includes routes for:
- /brokers/{broker}/credentials - Save encrypted broker credentials
- /sync/{broker} - On-demand sync, batch sync (service token) and history
- /imports/{source}/movements - Manual fund statement import
- /imports/{source}/prices/refresh - Fund price refresh (service token)
"""
from portfolio_sync.routers.credentials import router as credentials_router
from portfolio_sync.routers.imports import router as imports_router
from portfolio_sync.routers.sync import router as sync_router

__all__ = [
    "credentials_router",
    "imports_router",
    "sync_router",
]
