"""Service providers for routers.

The lifespan hook stores configured services on ``app.state``. Anything not
stored there is built on first use, so routers also work without the lifespan
and tests can swap a provider through ``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Callable, TypeVar

from fastapi import Request

from shepherd.directory.service import DirectoryService
from shepherd.domain.analytics.service import AnalyticsService
from shepherd.domain.app_settings.service import SettingsService
from shepherd.domain.followups.service import FollowUpService
from shepherd.domain.messaging.service import MessagingService
from shepherd.domain.messaging.sms import build_sms_gateway
from shepherd.domain.messaging.wishes import build_wish_generator
from shepherd.domain.profile_links.service import ProfileLinkService

T = TypeVar("T")


def _state_service(request: Request, name: str, factory: Callable[[], T]) -> T:
	service = getattr(request.app.state, name, None)
	if service is None:
		service = factory()
		setattr(request.app.state, name, service)
	return service


def get_directory_service(request: Request) -> DirectoryService:
	return _state_service(request, "directory_service", DirectoryService)


def get_followup_service(request: Request) -> FollowUpService:
	return _state_service(request, "followup_service", FollowUpService)


def get_analytics_service(request: Request) -> AnalyticsService:
	return _state_service(request, "analytics_service", AnalyticsService)


def get_settings_service(request: Request) -> SettingsService:
	return _state_service(request, "settings_service", SettingsService)


def get_profile_link_service(request: Request) -> ProfileLinkService:
	return _state_service(request, "profile_link_service", ProfileLinkService)


def get_messaging_service(request: Request) -> MessagingService:
	return _state_service(
		request,
		"messaging_service",
		lambda: MessagingService(build_sms_gateway(), build_wish_generator()),
	)


__all__ = [
	"get_analytics_service",
	"get_directory_service",
	"get_followup_service",
	"get_messaging_service",
	"get_profile_link_service",
	"get_settings_service",
]
