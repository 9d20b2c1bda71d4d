"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


gemini_calls_total = Counter(
    "gemini_calls_total",
    "Total Gemini generateContent calls",
    ["call", "outcome"],  # call: suggestions|fusion; outcome: ok|http_error|timeout|network_error|invalid_body
)

gemini_call_latency_seconds = Histogram(
    "gemini_call_latency_seconds",
    "Gemini generateContent latency in seconds",
    ["call"],
    buckets=(0.5, 1, 2, 5, 10, 20, 30, 60, 120, 180),
)

fusion_results_total = Counter(
    "fusion_results_total",
    "Fusion attempts by outcome",
    ["outcome"],  # success or FailureType value
)

suggestion_fetches_total = Counter(
    "suggestion_fetches_total",
    "Suggestion fetches by outcome",
    ["outcome"],  # ok, empty, failed
)


router = APIRouter()


@router.get("/metrics")
def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
