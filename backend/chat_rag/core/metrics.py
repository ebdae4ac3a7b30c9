"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

QUERY_COUNT = Counter(
    "chrag_queries_total",
    "RAG queries processed",
    labelnames=("outcome",),
    registry=REGISTRY,
)

QUERY_LATENCY = Histogram(
    "chrag_query_latency_seconds",
    "Latency of RAG query processing",
    registry=REGISTRY,
)

INGESTED_CHUNKS = Counter(
    "chrag_ingested_chunks_total",
    "Document chunks upserted into the vector index",
    registry=REGISTRY,
)

INGEST_DURATION = Histogram(
    "chrag_ingest_duration_seconds",
    "Ingest duration",
    labelnames=("source",),
    registry=REGISTRY,
)

INGESTED_MESSAGES = Counter(
    "chrag_ingested_messages_total",
    "Chat messages processed by the batch job",
    labelnames=("outcome",),
    registry=REGISTRY,
)

LISTENER_REPLIES = Counter(
    "chrag_listener_replies_total",
    "Replies posted by the DM listener",
    labelnames=("outcome",),
    registry=REGISTRY,
)

ACTIVE_CHANNEL_LISTENERS = Gauge(
    "chrag_active_channel_listeners",
    "Channels with an open message subscription",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "QUERY_COUNT",
    "QUERY_LATENCY",
    "INGESTED_CHUNKS",
    "INGEST_DURATION",
    "INGESTED_MESSAGES",
    "LISTENER_REPLIES",
    "ACTIVE_CHANNEL_LISTENERS",
    "metrics_response",
]
