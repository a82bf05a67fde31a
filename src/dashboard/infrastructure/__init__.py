"""Dashboard infrastructure: aggregation queries."""

from dashboard.infrastructure.repositories import SQLAlchemyMetricsRepository

__all__ = ["SQLAlchemyMetricsRepository"]
