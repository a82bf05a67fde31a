"""
Shared API Dependencies
=======================

FastAPI dependencies that hand out objects living on ``app.state``.
"""

from fastapi import Request

from shared.infrastructure.metrics import MetricsRegistry


def get_metrics_registry(request: Request) -> MetricsRegistry:
    """The application's metrics registry."""
    return request.app.state.metrics
