from __future__ import annotations

from prometheus_client import Counter, Histogram, start_http_server

server_requests_total = Counter(
    "vanessa_chat_server_requests_total",
    "Total HTTP requests handled by server",
    labelnames=["path", "status"],
)

server_request_latency_seconds = Histogram(
    "vanessa_chat_server_request_latency_seconds",
    "HTTP request latency (seconds)",
    buckets=[0.05, 0.1, 0.3, 0.5, 1, 2, 5, 10, 30, 60, 120, 300],
    labelnames=["path"],
)

server_errors_total = Counter(
    "vanessa_chat_server_errors_total",
    "Total errors returned by server",
    labelnames=["type"],
)

provider_requests_total = Counter(
    "vanessa_chat_provider_requests_total",
    "Upstream chat-completion calls by provider, model and outcome",
    labelnames=["provider", "model", "outcome"],
)

provider_request_latency_seconds = Histogram(
    "vanessa_chat_provider_request_latency_seconds",
    "Upstream chat-completion call latency",
    buckets=[0.1, 0.3, 0.5, 1, 2, 5, 10, 15, 30, 60],
    labelnames=["provider"],
)

fallback_results_total = Counter(
    "vanessa_chat_fallback_results_total",
    "Answers produced by the fallback chain, by source provider",
    labelnames=["source"],
)


def maybe_start_metrics(*, enable: bool, bind: str, port: int) -> None:
    if not enable:
        return
    start_http_server(port, addr=bind)
