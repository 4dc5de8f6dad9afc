"""Background jobs (daily scheduled syncs)."""
from portfolio_sync.tasks.scheduler import (get_scheduler_status,
                                            shutdown_scheduler,
                                            start_scheduler)

__all__ = ["get_scheduler_status", "shutdown_scheduler", "start_scheduler"]
