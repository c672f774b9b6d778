"""
Prometheus metrics blueprint.

/metrics exposes request latency per endpoint plus the register metrics:
checkout outcomes, checkout latency and catalog reloads. It is not
authenticated; keep it on the monitoring network.
"""
import os
import time

from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share counters through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

# In multiprocess mode metrics are written to files, not registered
_register_to = None if MULTIPROCESS_MODE else registry

pos_http_requests_total = Counter(
    'pos_http_requests_total',
    'HTTP requests by endpoint and status',
    ['method', 'endpoint', 'status'],
    registry=_register_to
)

pos_http_request_seconds = Histogram(
    'pos_http_request_seconds',
    'HTTP request latency',
    ['endpoint'],
    registry=_register_to,
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

pos_checkouts_in_flight = Gauge(
    'pos_checkouts_in_flight',
    'Checkout submissions currently waiting on the backend',
    registry=_register_to,
    multiprocess_mode='livesum'
)

# outcome: success or the failure kind (commit_rejected, network_or_server_error, ...)
pos_checkouts_total = Counter(
    'pos_checkouts_total',
    'Checkout submissions by outcome',
    ['outcome'],
    registry=_register_to
)

pos_catalog_loads_total = Counter(
    'pos_catalog_loads_total',
    'Catalog snapshot loads by status',
    ['status'],
    registry=_register_to
)

CHECKOUT_ENDPOINTS = {'terminal.checkout_submit', 'terminal.checkout_reconcile'}


def record_checkout(result) -> None:
    """Count a checkout Result by its outcome."""
    outcome = 'success' if result.ok else result.kind.value
    pos_checkouts_total.labels(outcome=outcome).inc()


def record_catalog_load(result) -> None:
    pos_catalog_loads_total.labels(status='ok' if result.ok else 'unavailable').inc()


def setup_metrics_instrumentation(app):
    """Time every request; track checkouts in flight."""

    @app.before_request
    def start_request_timer():
        g.request_started = time.perf_counter()
        if request.endpoint in CHECKOUT_ENDPOINTS:
            g.checkout_tracked = True
            pos_checkouts_in_flight.inc()

    @app.teardown_request
    def stop_checkout_tracking(exception=None):
        if g.pop('checkout_tracked', False):
            pos_checkouts_in_flight.dec()

    @app.after_request
    def observe_request(response):
        started = g.get('request_started')
        if started is None:
            return response
        endpoint = request.endpoint or 'unknown'
        pos_http_request_seconds.labels(endpoint=endpoint).observe(time.perf_counter() - started)
        pos_http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code
        ).inc()
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus text exposition."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
