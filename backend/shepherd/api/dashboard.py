"""Dashboard and attendance analytics endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from shepherd.api.deps import get_analytics_service
from shepherd.domain.analytics import schemas
from shepherd.domain.analytics.service import AnalyticsService
from shepherd.infra.auth import Caller, get_current_caller

router = APIRouter(tags=["dashboard"])


@router.get("/dashboard/stats", response_model=schemas.DashboardStats)
async def dashboard_stats(
	caller: Caller = Depends(get_current_caller),
	service: AnalyticsService = Depends(get_analytics_service),
) -> schemas.DashboardStats:
	return await service.dashboard_stats(caller)


@router.get("/analytics/attendance", response_model=schemas.AttendanceAnalytics)
async def attendance_analytics(
	caller: Caller = Depends(get_current_caller),
	service: AnalyticsService = Depends(get_analytics_service),
) -> schemas.AttendanceAnalytics:
	return await service.attendance_analytics(caller)
