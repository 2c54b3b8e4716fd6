import time
from fastapi import FastAPI, Request, Response
from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# --- Metric objects ---
REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["path", "method", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_latency_seconds",
    "Request latency seconds",
    labelnames=["path", "method"],
)
FETCHES = Counter(
    "character_fetches_total",
    "Upstream character fetches by outcome",
    labelnames=["outcome"],
)
FETCH_LATENCY = Histogram(
    "character_fetch_latency_seconds", "Upstream character fetch latency seconds"
)
STALE_RESULTS = Counter(
    "stale_fetch_results_total",
    "Fetch results discarded because a newer fetch was issued",
)


# --- Public helpers ---
def record_fetch(outcome: str, seconds: float) -> None:
    FETCHES.labels(outcome=outcome).inc()
    FETCH_LATENCY.observe(seconds)


def record_stale_result() -> None:
    STALE_RESULTS.inc()


# --- Installation: middleware + /metrics endpoint ---
def install(app: FastAPI) -> None:
    @app.middleware("http")
    async def _metrics_mw(request: Request, call_next):
        t0 = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = getattr(response, "status_code", 500)
            return response
        finally:
            dur = time.perf_counter() - t0
            REQUEST_LATENCY.labels(
                path=request.url.path, method=request.method
            ).observe(dur)
            REQUESTS.labels(
                path=request.url.path,
                method=request.method,
                status=str(status),
            ).inc()

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
