"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

REQUEST_COUNTER = Counter(
	"campuswatch_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"campuswatch_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"campuswatch_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"campuswatch_socketio_events_total",
	"Socket.IO events received or emitted per namespace",
	["namespace", "event"],
)

REPORTS_CREATED = Counter(
	"campuswatch_reports_created_total",
	"Incident reports created",
	["category"],
)

REPORT_TRANSITIONS = Counter(
	"campuswatch_report_transitions_total",
	"Report lifecycle mutations by audit action",
	["action"],
)

SPAM_AUTO_FLAGS = Counter(
	"campuswatch_spam_auto_flags_total",
	"Reports moved to spam after crossing the flag threshold",
)

NEARBY_QUERIES = Counter(
	"campuswatch_nearby_queries_total",
	"Nearby report queries",
	["radius"],
)

FANOUT_PUBLISHED = Counter(
	"campuswatch_fanout_published_total",
	"Real-time events published",
	["event"],
)

FANOUT_FAILURES = Counter(
	"campuswatch_fanout_failures_total",
	"Real-time publishes that failed and were dropped",
	["event"],
)

RATE_LIMITED_EVENTS = Counter(
	"campuswatch_rate_limited_total",
	"Operations rejected by rate limiting",
	["kind"],
)

AUDIT_WRITE_FAILURES = Counter(
	"campuswatch_audit_write_failures_total",
	"Mutations rolled back because the audit write failed",
	["action"],
)

PUSH_SIGNALS = Counter(
	"campuswatch_push_signals_total",
	"High-severity push signals handed to the delivery collaborator",
	["result"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_report_created(category: str) -> None:
	REPORTS_CREATED.labels(category=category).inc()


def inc_report_transition(action: str) -> None:
	REPORT_TRANSITIONS.labels(action=action).inc()


def inc_spam_auto_flag() -> None:
	SPAM_AUTO_FLAGS.inc()


def inc_nearby_query(radius: float) -> None:
	NEARBY_QUERIES.labels(radius=str(int(radius))).inc()


def inc_fanout_published(event: str) -> None:
	FANOUT_PUBLISHED.labels(event=event).inc()


def inc_fanout_failure(event: str) -> None:
	FANOUT_FAILURES.labels(event=event).inc()


def inc_rate_limited(kind: str) -> None:
	RATE_LIMITED_EVENTS.labels(kind=kind).inc()


def inc_audit_write_failure(action: str) -> None:
	AUDIT_WRITE_FAILURES.labels(action=action).inc()


def inc_push_signal(result: str) -> None:
	PUSH_SIGNALS.labels(result=result).inc()


def render_latest() -> tuple[bytes, str]:
	return generate_latest(), CONTENT_TYPE_LATEST
