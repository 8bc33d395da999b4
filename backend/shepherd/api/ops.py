"""Health and metrics endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from shepherd.obs import metrics as obs_metrics
from shepherd.settings import settings

router = APIRouter(tags=["ops"])


@router.get("/health")
async def health(request: Request) -> dict:
	identity = getattr(request.app.state, "identity_status", None)
	return {
		"status": "ok",
		"service": settings.service_name,
		"version": settings.git_commit,
		"identity_provider": identity or "unknown",
	}


@router.get("/metrics")
async def metrics() -> Response:
	body, content_type = obs_metrics.render_latest()
	return Response(content=body, media_type=content_type)
