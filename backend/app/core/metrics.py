"""
Prometheus metrics for application monitoring.
"""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.openmetrics.exposition import generate_latest as generate_latest_openmetrics
from fastapi import Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import time


# Request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Business metrics
referrals_recorded_total = Counter(
    'ambassador_referrals_recorded_total',
    'Attributed sales recorded',
    ['tier', 'recurring']
)

attribution_failures_total = Counter(
    'ambassador_attribution_failures_total',
    'Sales whose referral code could not be attributed',
    ['reason']
)

commission_amount_total = Counter(
    'ambassador_commission_amount_total',
    'Commission accrued (BRL)'
)

referral_transitions_total = Counter(
    'ambassador_referral_transitions_total',
    'Referral status changes',
    ['status']
)

payouts_total = Counter(
    'ambassador_payouts_total',
    'Payout status changes',
    ['status']
)

clicks_total = Counter(
    'ambassador_clicks_total',
    'Referral link clicks',
    ['utm_source']
)

tier_changes_total = Counter(
    'ambassador_tier_changes_total',
    'Tier recalculations that changed the tier',
    ['tier']
)

material_downloads_total = Counter(
    'ambassador_material_downloads_total',
    'Marketing material downloads and template copies',
    ['type']
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        if request.url.path == "/metrics":
            return await call_next(request)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration = time.time() - start_time
            # Route template keeps label cardinality bounded (/admin/payouts/{payout_id})
            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)

            http_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code
            ).inc()

            http_request_duration_seconds.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(duration)

        return response


def get_metrics_response(openmetrics: bool = False) -> Response:
    """
    Get Prometheus metrics response.

    Args:
        openmetrics: If True, return OpenMetrics format, else Prometheus format
    """
    if openmetrics:
        content = generate_latest_openmetrics()
        content_type = "application/openmetrics-text; version=1.0.0; charset=utf-8"
    else:
        content = generate_latest()
        content_type = CONTENT_TYPE_LATEST

    return Response(content=content, media_type=content_type)
