"""Read-only HTTP view over the ledger: JSON API, HTML page and Prometheus metrics."""

from .app import create_dashboard_app
from .state import DashboardState

__all__ = ["DashboardState", "create_dashboard_app"]
