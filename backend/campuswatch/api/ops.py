"""Health and metrics endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Response

from campuswatch.obs import metrics as obs_metrics
from campuswatch.settings import settings

router = APIRouter(tags=["ops"])


@router.get("/health")
async def health() -> dict:
	return {
		"success": True,
		"status": "ok",
		"service": settings.service_name,
		"environment": settings.environment,
		"commit": settings.git_commit,
	}


@router.get("/metrics")
async def metrics() -> Response:
	body, content_type = obs_metrics.render_latest()
	return Response(content=body, media_type=content_type)
