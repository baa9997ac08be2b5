"""
Monitoring for Ofie Assistant.

Prometheus metrics shared by the pipeline and the HTTP layer.
"""

from .metrics import (
    record_cache_hit,
    record_cache_miss,
    record_followup,
    record_handoff,
    record_intent,
    record_llm_latency,
    record_pipeline_error,
    record_provider_failure,
    record_reply_source,
)

__all__ = [
    "record_cache_hit",
    "record_cache_miss",
    "record_followup",
    "record_handoff",
    "record_intent",
    "record_llm_latency",
    "record_pipeline_error",
    "record_provider_failure",
    "record_reply_source",
]
