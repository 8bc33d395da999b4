"""Birthday wish generation through OpenRouter chat completions.

Models are tried in order until one returns usable text. When none do, or no
API key is configured, a static wish is returned with ``success=False``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence

import httpx
from pydantic import BaseModel, Field

from shepherd.obs import metrics as obs_metrics
from shepherd.settings import DEFAULT_FALLBACK_MODELS, settings

_LOG = logging.getLogger(__name__)

# Models in these families reject a system role; the prompt is folded into the user turn.
NO_SYSTEM_PROMPT_MODELS = ("gemma",)

SYSTEM_PROMPT = (
	"You are a helpful assistant for Agape Incorporated Ministries generating warm birthday wishes. "
	"Always output exactly ONE birthday message, never multiple options."
)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F]")


class WishTone(str, Enum):
	SPIRITUAL = "spiritual"
	CASUAL = "casual"
	FORMAL = "formal"


class WishRequest(BaseModel):
	member_name: str = Field(..., min_length=1, max_length=100)
	role: Optional[str] = Field(default=None, max_length=50)
	campus: Optional[str] = Field(default=None, max_length=100)
	tone: WishTone = WishTone.SPIRITUAL


class WishResult(BaseModel):
	success: bool
	content: str
	model: Optional[str] = None
	message: Optional[str] = None


def no_key_wish(name: str) -> str:
	return f"Happy Birthday {name}! We pray for God's blessings over your life. Have a wonderful day! 🎂"


def fallback_wish(name: str) -> str:
	return f"Happy Birthday {name}! May God bless your new age with grace and strength. 🎉"


def build_prompt(request: WishRequest) -> str:
	role = f", who is a {request.role}" if request.role else ""
	return (
		f"Write exactly ONE short, warm, {request.tone.value} birthday wish for {request.member_name}{role} "
		"at Agape Incorporated Ministries.\n\n"
		"Rules:\n"
		"- Keep it under 200 characters total\n"
		"- Add line breaks between greeting and blessing for readability\n"
		"- Format it nicely for WhatsApp/SMS (use 2-3 short lines, not one long paragraph)\n"
		"- Focus on blessings and spiritual growth\n"
		"- Add 1-2 emojis\n"
		"- Do NOT include hashtags\n"
		"- Give only ONE final message ready to send, no options"
	)


def supports_system_prompt(model: str) -> bool:
	lowered = model.lower()
	return not any(prefix in lowered for prefix in NO_SYSTEM_PROMPT_MODELS)


def build_messages(model: str, prompt: str, system_prompt: str = SYSTEM_PROMPT) -> list[dict[str, str]]:
	if supports_system_prompt(model):
		return [
			{"role": "system", "content": system_prompt},
			{"role": "user", "content": prompt},
		]
	return [{"role": "user", "content": f"{system_prompt}\n\n{prompt}"}]


def clean_content(raw: Any) -> str:
	if not isinstance(raw, str):
		return ""
	content = raw.strip()
	if content.startswith('"'):
		content = content[1:]
	if content.endswith('"'):
		content = content[:-1]
	content = content.replace("\ufffd", "✨")
	return _CONTROL_CHARS.sub("", content)


@dataclass
class WishGenerator:
	http: httpx.AsyncClient
	api_key: Optional[str]
	url: str
	models: Sequence[str] = field(default_factory=lambda: DEFAULT_FALLBACK_MODELS)
	timeout_seconds: float = 15.0

	async def _call(self, model: str, prompt: str) -> Optional[str]:
		try:
			response = await self.http.post(
				self.url,
				json={
					"model": model,
					"messages": build_messages(model, prompt),
					"temperature": 0.7,
					"max_tokens": 150,
				},
				headers={
					"Authorization": f"Bearer {self.api_key}",
					"HTTP-Referer": settings.app_url,
				},
				timeout=self.timeout_seconds,
			)
		except httpx.HTTPError as exc:
			_LOG.warning("wishes.model_error", extra={"model": model, "error": repr(exc)})
			return None
		if response.status_code >= 400:
			_LOG.warning("wishes.model_rejected", extra={"model": model, "status_code": response.status_code})
			return None
		try:
			choices = response.json().get("choices") or []
			raw = choices[0]["message"]["content"] if choices else None
		except (ValueError, KeyError, TypeError, AttributeError):
			return None
		return clean_content(raw) or None

	async def generate(self, request: WishRequest) -> WishResult:
		if not self.api_key:
			obs_metrics.inc_wish("no_key")
			return WishResult(success=False, content=no_key_wish(request.member_name), message="AI configuration missing")
		prompt = build_prompt(request)
		for model in self.models:
			content = await self._call(model, prompt)
			if content:
				obs_metrics.inc_wish("model")
				_LOG.info("wishes.generated", extra={"model": model})
				return WishResult(success=True, content=content, model=model)
		obs_metrics.inc_wish("fallback")
		_LOG.warning("wishes.all_models_failed", extra={"models": list(self.models)})
		return WishResult(success=False, content=fallback_wish(request.member_name), message="All AI models failed")

	async def aclose(self) -> None:
		await self.http.aclose()


def model_order(primary: Optional[str], fallbacks: Sequence[str]) -> tuple[str, ...]:
	"""Primary first, then fallbacks, without duplicates."""
	ordered = ([primary] if primary else []) + list(fallbacks)
	return tuple(dict.fromkeys(ordered))


def build_wish_generator(*, transport: httpx.AsyncBaseTransport | None = None) -> WishGenerator:
	return WishGenerator(
		http=httpx.AsyncClient(timeout=settings.openrouter_timeout_seconds, transport=transport),
		api_key=settings.openrouter_api_key,
		url=settings.openrouter_url,
		models=model_order(settings.openrouter_model, settings.openrouter_fallback_models),
		timeout_seconds=settings.openrouter_timeout_seconds,
	)


__all__ = [
	"WishGenerator",
	"WishRequest",
	"WishResult",
	"WishTone",
	"build_messages",
	"build_wish_generator",
	"clean_content",
	"fallback_wish",
	"model_order",
	"no_key_wish",
]
