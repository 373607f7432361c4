"""
Prometheus metrics: HTTP request instrumentation, export counters and
the /metrics endpoint (keep it on the internal network).
"""
import os
import time

from flask import Blueprint, Response, g, request
from prometheus_client import (
    CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, Counter, Gauge, Histogram,
    generate_latest, multiprocess
)

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share metrics through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    multiprocess_mode='livesum',
)

quote_exports_total = Counter(
    'quote_exports_total',
    'Quote documents exported, by format',
    ['format'],
)

quote_export_failures_total = Counter(
    'quote_export_failures_total',
    'Quote exports that raised an error, by format',
    ['format'],
)


def record_export(fmt, ok=True):
    """Count one export attempt (fmt: pdf, pdf_list, html, print)."""
    if ok:
        quote_exports_total.labels(format=fmt).inc()
    else:
        quote_export_failures_total.labels(format=fmt).inc()


def setup_metrics_instrumentation(app):
    """Register before/after request hooks that time every request."""

    @app.before_request
    def before_request_metrics():
        g._prometheus_metrics_start_time = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def after_request_metrics(response):
        start = g.pop('_prometheus_metrics_start_time', None)
        if start is None:
            return response
        try:
            http_requests_in_flight.dec()
            endpoint = request.endpoint or 'unknown'
            if endpoint == 'metrics.metrics':
                return response

            http_request_duration_seconds.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(time.time() - start)
            http_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                http_status=response.status_code
            ).inc()
        except Exception as e:
            # Metrics must never break a response
            app.logger.warning(f"Failed to record metrics: {e}")

        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus scrape endpoint (unauthenticated)."""
    if MULTIPROCESS_MODE:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        data = generate_latest(registry)
    else:
        data = generate_latest(REGISTRY)
    return Response(data, mimetype=CONTENT_TYPE_LATEST)
