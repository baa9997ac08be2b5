"""
Prometheus metrics for Ofie Assistant.

Request metrics are recorded by the API middleware; the rest are
business metrics recorded by the response pipeline and jobs.
"""

from prometheus_client import Counter, Gauge, Histogram

# Request metrics
REQUEST_COUNT = Counter(
    "ofie_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "ofie_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
ACTIVE_REQUESTS = Gauge(
    "ofie_http_active_requests",
    "Currently active HTTP requests",
)

# Business metrics
INTENT_COUNT = Counter(
    "ofie_intent_classification_total",
    "Intent classifications",
    ["intent"],
)
REPLY_SOURCE = Counter(
    "ofie_replies_total",
    "Assistant replies by source",
    ["source"],
)
PROVIDER_FAILURES = Counter(
    "ofie_provider_failures_total",
    "Provider calls that failed or returned unusable output",
    ["provider", "reason"],
)
LLM_LATENCY = Histogram(
    "ofie_llm_duration_seconds",
    "Provider generation latency",
    ["provider"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)
CACHE_HITS = Counter("ofie_cache_hits_total", "Cache hits", ["cache_type"])
CACHE_MISSES = Counter("ofie_cache_misses_total", "Cache misses", ["cache_type"])
HANDOFF_SIGNALS = Counter(
    "ofie_handoff_signals_total",
    "Handoff reasons raised",
    ["reason"],
)
FOLLOWUPS = Counter(
    "ofie_followups_total",
    "Follow-up outcomes",
    ["kind", "outcome"],
)
PIPELINE_ERRORS = Counter(
    "ofie_pipeline_errors_total",
    "Response pipeline failures",
    ["stage"],
)


def record_intent(intent: str):
    """Record an intent classification event."""
    INTENT_COUNT.labels(intent=intent).inc()


def record_reply_source(source: str):
    """Record where a reply came from: generated, fallback or cached."""
    REPLY_SOURCE.labels(source=source).inc()


def record_provider_failure(provider: str, reason: str):
    PROVIDER_FAILURES.labels(provider=provider, reason=reason).inc()


def record_llm_latency(provider: str, seconds: float):
    """Record provider generation latency."""
    LLM_LATENCY.labels(provider=provider).observe(seconds)


def record_cache_hit(cache_type: str):
    CACHE_HITS.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str):
    CACHE_MISSES.labels(cache_type=cache_type).inc()


def record_handoff(reasons):
    """Record each reason of a raised handoff signal."""
    for reason in reasons:
        HANDOFF_SIGNALS.labels(reason=reason).inc()


def record_followup(kind: str, outcome: str):
    """Record a follow-up outcome: scheduled, sent, skipped or failed."""
    FOLLOWUPS.labels(kind=kind, outcome=outcome).inc()


def record_pipeline_error(stage: str):
    PIPELINE_ERRORS.labels(stage=stage).inc()
