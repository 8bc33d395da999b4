"""SMS gateway client (Arkesel v2) plus message templates and chat links."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence, Union
from urllib.parse import quote

import httpx

from shepherd.obs import metrics as obs_metrics
from shepherd.settings import settings

_LOG = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def format_phone_number(phone: str, *, country_code: Optional[str] = None) -> str:
	"""International ``+`` form. A leading 0 is treated as a local number."""
	digits = _NON_DIGITS.sub("", phone or "")
	if digits.startswith("0"):
		digits = (country_code or settings.sms_country_code) + digits[1:]
	return "+" + digits


def whatsapp_link(phone: str, message: Optional[str] = None) -> str:
	number = format_phone_number(phone).lstrip("+")
	if message:
		return f"https://wa.me/{number}?text={quote(message, safe='')}"
	return f"https://wa.me/{number}"


def call_link(phone: str) -> str:
	return f"tel:{format_phone_number(phone)}"


class SmsTemplates:
	@staticmethod
	def event_reminder(member_name: str, event_name: str, event_date: str) -> str:
		return f"Hi {member_name}! Reminder: {event_name} on {event_date}. We hope to see you there! - Agape Ministry"

	@staticmethod
	def birthday_wish(member_name: str) -> str:
		return (
			f"🎂 Happy Birthday {member_name}! May God bless you abundantly today and always. "
			"With love, Agape Ministry Family"
		)

	@staticmethod
	def follow_up(member_name: str) -> str:
		return (
			f"Hi {member_name}, we're thinking of you! How are you doing? "
			"Feel free to reach out if you need anything. God bless! - Agape Ministry"
		)

	@staticmethod
	def new_convert(member_name: str) -> str:
		return (
			f"Welcome to the family, {member_name}! 🙏 We're so excited to have you. "
			"Someone will reach out soon. - Agape Ministry"
		)

	@staticmethod
	def announcement(message: str) -> str:
		return f"📢 Agape Ministry: {message}"


@dataclass(frozen=True)
class SendResult:
	success: bool
	error: Optional[str] = None
	message_id: Optional[str] = None


@dataclass(frozen=True)
class Recipient:
	phone: str
	name: str = "Member"


@dataclass(frozen=True)
class BulkSendReport:
	sent: int
	failed: int

	@property
	def total(self) -> int:
		return self.sent + self.failed


MessageTemplate = Union[str, Callable[[str], str]]


@dataclass
class SmsGateway:
	http: httpx.AsyncClient
	api_key: Optional[str]
	sender_id: str
	api_url: str
	batch_size: int = 5
	timeout_seconds: float = 10.0

	@property
	def configured(self) -> bool:
		return bool(self.api_key)

	async def send(self, to: Union[str, Sequence[str]], message: str) -> SendResult:
		"""Send one message. Gateway and network failures come back as results."""
		if not self.api_key:
			return SendResult(False, error="SMS not configured")
		numbers = [to] if isinstance(to, str) else list(to)
		body = {
			"sender": self.sender_id,
			"message": message,
			"recipients": [format_phone_number(number) for number in numbers],
		}
		try:
			response = await asyncio.wait_for(
				self.http.post(self.api_url, json=body, headers={"api-key": self.api_key}),
				timeout=self.timeout_seconds,
			)
			data = response.json()
		except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as exc:
			_LOG.warning("sms.send_failed", extra={"error": repr(exc)})
			return SendResult(False, error=str(exc) or type(exc).__name__)
		if isinstance(data, dict) and data.get("status") == "success":
			payload = data.get("data")
			message_id = payload.get("id") if isinstance(payload, dict) else None
			return SendResult(True, message_id=message_id)
		error = data.get("message") if isinstance(data, dict) else None
		_LOG.warning("sms.gateway_rejected", extra={"status_code": response.status_code, "error": error})
		return SendResult(False, error=error or "SMS send failed")

	async def send_bulk(self, recipients: Iterable[Recipient], template: MessageTemplate) -> BulkSendReport:
		"""Personalised sends, at most ``batch_size`` in flight at a time."""
		recipients = list(recipients)
		sent = failed = 0
		size = max(1, self.batch_size)
		for start in range(0, len(recipients), size):
			batch = recipients[start : start + size]
			results = await asyncio.gather(
				*(self.send(item.phone, template(item.name) if callable(template) else template) for item in batch),
				return_exceptions=True,
			)
			for result in results:
				if isinstance(result, SendResult) and result.success:
					sent += 1
				else:
					failed += 1
		obs_metrics.inc_sms("sent", sent)
		obs_metrics.inc_sms("failed", failed)
		_LOG.info("sms.bulk_sent", extra={"sent": sent, "failed": failed})
		return BulkSendReport(sent=sent, failed=failed)

	async def aclose(self) -> None:
		await self.http.aclose()


def build_sms_gateway(*, transport: httpx.AsyncBaseTransport | None = None) -> SmsGateway:
	return SmsGateway(
		http=httpx.AsyncClient(timeout=settings.sms_timeout_seconds, transport=transport),
		api_key=settings.sms_api_key,
		sender_id=settings.sms_sender_id,
		api_url=settings.sms_api_url,
		batch_size=settings.sms_batch_size,
		timeout_seconds=settings.sms_timeout_seconds,
	)


__all__ = [
	"BulkSendReport",
	"Recipient",
	"SendResult",
	"SmsGateway",
	"build_sms_gateway",
	"call_link",
	"format_phone_number",
	"SmsTemplates",
	"whatsapp_link",
]
