"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campuswatch.api import moderation, notifications, ops, reports
from campuswatch.api.errors import install_error_handlers
from campuswatch.domain import container
from campuswatch.domain.realtime.sockets import ReportsNamespace
from campuswatch.infra import postgres
from campuswatch.obs import init as obs_init
from campuswatch.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	if settings.storage_backend == "postgres":
		pool = await postgres.init_pool()
		container.configure_postgres(pool)
		reports_namespace.directory = container.get_directory()
	else:
		logger.warning("using in-memory storage", extra={"backend": settings.storage_backend})
	try:
		yield
	finally:
		await container.get_hub().drain()
		await postgres.close_pool()


app = FastAPI(title="CampusWatch Reports", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = [settings.frontend_url]

# Starlette disallows wildcard '*' with allow_credentials=True. Replace '*' with explicit origins.
if "*" in allow_origins:
	if settings.is_dev():
		allow_origins = [
			"http://localhost:3000",
			"http://127.0.0.1:3000",
			"http://localhost:5173",
			"http://127.0.0.1:5173",
		]
	else:
		allow_origins = [settings.frontend_url]

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs_init(app)

# Use the same allowed origins for Socket.IO as for the REST API
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
hub = container.get_hub()
hub.attach(sio)
reports_namespace = ReportsNamespace(hub, container.get_directory())
sio.register_namespace(reports_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)

app.include_router(ops.router)
app.include_router(reports.router)
app.include_router(moderation.router)
app.include_router(notifications.router)
