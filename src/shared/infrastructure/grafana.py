"""
Grafana OTLP Metrics Exporter
==============================

Pushes the service's MetricsRegistry to Grafana Cloud via OTLP/HTTP JSON.

Metrics exported:
- tickets_total: Tickets created or moved to a status (cumulative sum)
- ticket_response_time_seconds: Ticket creation handling time (histogram)
- http_requests_total: HTTP requests served (cumulative sum)
- http_request_duration_seconds: HTTP request duration (histogram)
"""

import base64
import time
from typing import Any, Dict, List, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import settings
from shared.infrastructure.logging import get_logger
from shared.infrastructure.metrics import Counter, Histogram, MetricsRegistry

logger = get_logger(__name__)

# OTLP AggregationTemporality
AGGREGATION_TEMPORALITY_CUMULATIVE = 2


def _attributes(labels: Dict[str, str]) -> List[Dict[str, Any]]:
    return [
        {"key": key, "value": {"stringValue": str(value)}}
        for key, value in labels.items()
    ]


def _counter_metric(counter: Counter, start_ns: int, now_ns: int) -> Dict[str, Any]:
    return {
        "name": counter.name,
        "unit": "1",
        "description": counter.description,
        "sum": {
            "aggregationTemporality": AGGREGATION_TEMPORALITY_CUMULATIVE,
            "isMonotonic": True,
            "dataPoints": [
                {
                    "asDouble": sample["value"],
                    "startTimeUnixNano": start_ns,
                    "timeUnixNano": now_ns,
                    "attributes": _attributes(sample["labels"]),
                }
                for sample in counter.samples()
            ],
        },
    }


def _histogram_metric(histogram: Histogram, start_ns: int, now_ns: int) -> Dict[str, Any]:
    data_points = []
    for series in histogram.snapshot():
        cumulative = list(series.buckets.values())
        # OTLP wants per-bucket counts plus a final overflow bucket
        bucket_counts = [
            count - (cumulative[i - 1] if i else 0)
            for i, count in enumerate(cumulative)
        ]
        bucket_counts.append(series.count - (cumulative[-1] if cumulative else 0))
        data_points.append({
            "count": series.count,
            "sum": series.sum,
            "bucketCounts": bucket_counts,
            "explicitBounds": list(histogram.buckets),
            "startTimeUnixNano": start_ns,
            "timeUnixNano": now_ns,
            "attributes": _attributes(series.labels),
        })

    return {
        "name": histogram.name,
        "unit": "s",
        "description": histogram.description,
        "histogram": {
            "aggregationTemporality": AGGREGATION_TEMPORALITY_CUMULATIVE,
            "dataPoints": data_points,
        },
    }


class GrafanaOTLPExporter:
    """
    Export registry metrics to Grafana Cloud via OTLP HTTP endpoint.

    Uses OpenTelemetry Protocol (OTLP) JSON encoding for metrics.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize Grafana OTLP exporter.

        Args:
            host: Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-sa-east-1.grafana.net)
            api_key: Grafana API key
            instance_id: Instance ID for authentication
            http_client: Client to send with (tests); a short-lived one is used otherwise
        """
        self._host = host or settings.grafana_host
        self._api_key = api_key or settings.grafana_api_key
        self._instance_id = instance_id or settings.grafana_instance_id
        self._http_client = http_client
        self._enabled = bool(self._host and self._api_key and self._instance_id)
        self._start_ns = time.time_ns()

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            # Don't double-append the path if host already includes it
            if "/otlp/v1/metrics" not in self._host:
                self._url = f"{self._host.rstrip('/')}/otlp/v1/metrics"
            else:
                self._url = self._host
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": self._host, "instance_id": self._instance_id}
            )
        else:
            logger.info(
                "Grafana OTLP exporter not configured - metrics will not be exported",
                extra={
                    "host_configured": bool(self._host),
                    "api_key_configured": bool(self._api_key),
                    "instance_id_configured": bool(self._instance_id)
                }
            )

    def is_enabled(self) -> bool:
        """Check if exporter is properly configured."""
        return self._enabled

    def build_payload(self, registry: MetricsRegistry, now_ns: Optional[int] = None) -> Dict[str, Any]:
        """OTLP ``resourceMetrics`` document for every instrument in the registry."""
        now_ns = now_ns or time.time_ns()
        metrics = [
            _counter_metric(counter, self._start_ns, now_ns)
            for counter in registry.counters
        ] + [
            _histogram_metric(histogram, self._start_ns, now_ns)
            for histogram in registry.histograms
        ]

        return {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": [
                            {"key": "service.name", "value": {"stringValue": settings.app_name}},
                            {"key": "service.version", "value": {"stringValue": settings.app_version}},
                            {"key": "deployment.environment", "value": {"stringValue": settings.environment}},
                        ]
                    },
                    "scopeMetrics": [{"metrics": metrics}],
                }
            ]
        }

    async def export_registry(self, registry: MetricsRegistry) -> bool:
        """
        Push the current registry state to Grafana.

        Returns:
            True if export succeeded, False otherwise
        """
        if not self._enabled:
            logger.debug("Grafana exporter not enabled - skipping metrics export")
            return False

        payload = self.build_payload(registry)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self._url, headers=headers, json=payload)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.post(self._url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error(
                "Error exporting metrics to Grafana",
                extra={"error": str(e), "url": self._url}
            )
            return False

        if response.status_code in (200, 202):
            logger.debug(
                "Metrics exported to Grafana",
                extra={"status_code": response.status_code}
            )
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={
                "status_code": response.status_code,
                "response": response.text[:500],
                "url": self._url
            }
        )
        return False


class MetricsPushScheduler:
    """
    Wrapper for APScheduler pushing metrics on an interval.

    Manages the lifecycle of the scheduler and its single job.
    """

    def __init__(
        self,
        exporter: GrafanaOTLPExporter,
        registry: MetricsRegistry,
        interval_seconds: Optional[int] = None
    ):
        self.exporter = exporter
        self.registry = registry
        self.interval_seconds = (
            settings.metrics_push_interval if interval_seconds is None else interval_seconds
        )
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def push(self) -> bool:
        return await self.exporter.export_registry(self.registry)

    async def start(self) -> None:
        """Start the scheduler (no-op when the exporter is not configured)."""
        if self._running:
            logger.warning("Metrics push scheduler already running")
            return
        if not self.exporter.is_enabled() or self.interval_seconds <= 0:
            logger.info("Metrics push disabled")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.push,
            "interval",
            seconds=self.interval_seconds,
            id="metrics_push",
            name="Grafana Metrics Push",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info(
            "Metrics push scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Metrics push scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
