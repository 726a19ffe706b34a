import secrets
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass
class TraceContext:
    """Identifiers propagated with every outgoing request."""

    trace_id: str
    span_id: str
    parent_span_id: str | None = None

    def to_headers(self) -> dict[str, str]:
        headers = {"X-Trace-Id": self.trace_id, "X-Span-Id": self.span_id}
        if self.parent_span_id:
            headers["X-Parent-Span-Id"] = self.parent_span_id
        return headers


def generate_id(length: int = 16) -> str:
    """Random lowercase hex id of `length` characters."""
    return secrets.token_hex((length + 1) // 2)[:length]


def generate_request_id() -> str:
    return generate_id(16)


def generate_correlation_id() -> str:
    """Correlation ids look like req_<epoch ms>_<random>."""
    now_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"req_{now_ms}_{generate_id(9)}"


def generate_trace_context(parent_span_id: str | None = None) -> TraceContext:
    return TraceContext(
        trace_id=generate_id(32),
        span_id=generate_id(16),
        parent_span_id=parent_span_id,
    )


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()
