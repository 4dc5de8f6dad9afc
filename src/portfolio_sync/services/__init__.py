"""Service layer: sync orchestration, reconciliation, cost basis and imports.

Import concrete services from their modules (e.g. ``portfolio_sync.services.sync``);
broker clients depend on ``cost_basis`` so this package stays import-free.
"""
