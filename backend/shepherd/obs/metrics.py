"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUEST_COUNTER = Counter(
	"shepherd_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"shepherd_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

ATTENDANCE_MARKS = Counter(
	"shepherd_attendance_marks_total",
	"Attendance mark attempts by mode and result",
	["mode", "result"],
)

ACCOUNT_SYNC = Counter(
	"shepherd_account_sync_total",
	"Account synchronisation outcomes after member role/status writes",
	["outcome"],
)

IDENTITY_OUTBOX_EVENTS = Counter(
	"shepherd_identity_outbox_events_total",
	"Identity provider side effects processed from the outbox",
	["action", "result"],
)

SMS_MESSAGES = Counter(
	"shepherd_sms_messages_total",
	"SMS messages handed to the gateway",
	["result"],
)

WISH_GENERATIONS = Counter(
	"shepherd_wish_generations_total",
	"Birthday wish generation attempts",
	["source"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_attendance_mark(mode: str, result: str, amount: int = 1) -> None:
	ATTENDANCE_MARKS.labels(mode=mode, result=result).inc(amount)


def inc_account_sync(outcome: str) -> None:
	ACCOUNT_SYNC.labels(outcome=outcome).inc()


def inc_identity_event(action: str, result: str) -> None:
	IDENTITY_OUTBOX_EVENTS.labels(action=action, result=result).inc()


def inc_sms(result: str, amount: int = 1) -> None:
	if amount:
		SMS_MESSAGES.labels(result=result).inc(amount)


def inc_wish(source: str) -> None:
	WISH_GENERATIONS.labels(source=source).inc()


def render_latest() -> tuple[bytes, str]:
	return generate_latest(), CONTENT_TYPE_LATEST
