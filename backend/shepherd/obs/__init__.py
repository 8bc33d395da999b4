"""Observability package bootstrap."""

from __future__ import annotations

from fastapi import FastAPI

from shepherd.obs import logging as obs_logging
from shepherd.obs import middleware
from shepherd.settings import settings

_logging_configured = False


def init(app: FastAPI) -> None:
	"""Install request middleware on the app and configure logging once per process."""
	global _logging_configured
	middleware.install(app, enabled=settings.obs_enabled)
	if settings.obs_enabled and not _logging_configured:
		obs_logging.configure_logging()
		_logging_configured = True


__all__ = ["init"]
