"""
Prometheus metrics blueprint.

/metrics exposes request counts and latency per endpoint, plus the outcome
counters of quote approvals and gift card redemptions. Keep it on the
internal network.
"""
import time

from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

metrics_bp = Blueprint('metrics', __name__)

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

quote_approvals_total = Counter(
    'quote_approvals_total',
    'Quote approval runs by outcome',
    ['outcome'],  # issued, replayed, ignored, forbidden, not_found, failed
)

gift_card_redemptions_total = Counter(
    'gift_card_redemptions_total',
    'Gift card redemptions by outcome',
    ['outcome'],  # redeemed, rejected, conflict, failed
)


def setup_metrics_instrumentation(app):
    """Time every request and count it by endpoint and status."""

    @app.before_request
    def start_timer():
        g._request_started = time.perf_counter()

    @app.after_request
    def record_request(response):
        started = g.pop('_request_started', None)
        if started is not None and request.endpoint != 'metrics.metrics':
            endpoint = request.endpoint or 'unknown'
            http_request_duration_seconds.labels(request.method, endpoint).observe(time.perf_counter() - started)
            http_requests_total.labels(request.method, endpoint, response.status_code).inc()
        return response


@metrics_bp.route('/metrics')
def metrics():
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)
