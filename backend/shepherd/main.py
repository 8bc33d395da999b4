"""ASGI entrypoint for the Shepherd View API."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shepherd import obs
from shepherd.api import (
	app_settings,
	assignments,
	camps,
	dashboard,
	events,
	followups,
	members,
	messaging,
	ops,
	profile_updates,
)
from shepherd.api.errors import install_error_handlers
from shepherd.directory.outbox import IdentityOutboxDispatcher
from shepherd.directory.service import DirectoryService
from shepherd.domain.messaging.service import MessagingService
from shepherd.domain.messaging.sms import build_sms_gateway
from shepherd.domain.messaging.wishes import build_wish_generator
from shepherd.infra import postgres
from shepherd.infra.identity import IdentityProviderReady, connect_identity_provider
from shepherd.infra.redis import close_redis
from shepherd.settings import settings

_LOG = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	worker_tasks: list[asyncio.Task] = []
	dispatcher: IdentityOutboxDispatcher | None = None

	connection = connect_identity_provider(settings)
	if isinstance(connection, IdentityProviderReady):
		app.state.identity_client = connection.client
		app.state.identity_status = "ready"
		dispatcher = IdentityOutboxDispatcher(connection.client)
		if settings.identity_outbox_enabled:
			worker_tasks.append(asyncio.create_task(dispatcher.run_forever(), name="identity-outbox"))
	else:
		app.state.identity_client = None
		app.state.identity_status = connection.reason
		_LOG.warning("identity_provider.unavailable", extra={"reason": connection.reason, **connection.details})

	app.state.directory_service = DirectoryService(
		after_commit=dispatcher.process_once if dispatcher is not None else None
	)
	gateway = build_sms_gateway()
	wishes = build_wish_generator()
	app.state.messaging_service = MessagingService(gateway, wishes)
	try:
		yield
	finally:
		await app.state.directory_service.drain()
		if dispatcher is not None:
			dispatcher.stop()
		for task in worker_tasks:
			task.cancel()
		await asyncio.gather(*worker_tasks, return_exceptions=True)
		if app.state.identity_client is not None:
			await app.state.identity_client.aclose()
		await gateway.aclose()
		await wishes.aclose()
		await postgres.close_pool()
		await close_redis()


def create_app() -> FastAPI:
	app = FastAPI(title="Shepherd View API", lifespan=lifespan)
	install_error_handlers(app)

	allow_origins = list(settings.cors_allow_origins)
	if not allow_origins:
		allow_origins = ["http://localhost:3000"] if settings.is_dev() else [settings.app_url]
	app.add_middleware(
		CORSMiddleware,
		allow_origins=allow_origins,
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	obs.init(app)

	app.include_router(ops.router)
	app.include_router(members.router)
	app.include_router(camps.router)
	app.include_router(events.router)
	app.include_router(assignments.router)
	app.include_router(followups.router)
	app.include_router(dashboard.router)
	app.include_router(app_settings.router)
	app.include_router(profile_updates.router)
	app.include_router(messaging.router)
	return app


app = create_app()
