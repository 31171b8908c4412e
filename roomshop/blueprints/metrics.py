"""
Prometheus metrics blueprint.

Exposes /metrics with HTTP request metrics and the marketplace counters
defined in ``roomshop.metrics``.

Restrict /metrics to the internal network or the monitoring system.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Histogram, Gauge, Counter, generate_latest, CONTENT_TYPE_LATEST
from roomshop.metrics import registry, metric_registry
import time

metrics_bp = Blueprint('metrics', __name__)

http_requests_total = Counter(
    'roomshop_http_requests_total',
    'HTTP requests by endpoint and status',
    ['method', 'endpoint', 'http_status'],
    registry=metric_registry
)

http_request_duration_seconds = Histogram(
    'roomshop_http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_requests_in_flight = Gauge(
    'roomshop_http_requests_in_flight',
    'HTTP requests being processed',
    registry=metric_registry
)


def setup_metrics_instrumentation(app):
    """Register request hooks that time every request."""

    @app.before_request
    def start_request_timer():
        g.request_started_at = time.perf_counter()
        http_requests_in_flight.inc()

    @app.after_request
    def record_request_metrics(response):
        started_at = g.pop('request_started_at', None)
        if started_at is None:
            return response
        try:
            endpoint = request.endpoint or 'unknown'
            http_request_duration_seconds.labels(request.method, endpoint).observe(
                time.perf_counter() - started_at
            )
            http_requests_total.labels(request.method, endpoint, response.status_code).inc()
            http_requests_in_flight.dec()
        except Exception as e:
            app.logger.warning(f"Failed to record metrics: {e}")
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus text exposition of every registered metric."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
