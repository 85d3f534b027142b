from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.dependencies import get_answer_cache, get_session_registry, get_slack_client
from app.routers import chat, debug, documents, health, learning, slack, ws
from app.runtime import configure_logging, ensure_supported_python

ensure_supported_python()
configure_logging(get_settings())


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    tasks = [
        asyncio.create_task(get_session_registry().run_liveness_loop(settings.liveness_interval_seconds)),
        asyncio.create_task(get_answer_cache().run_cleanup_loop(settings.cache_cleanup_interval_seconds)),
    ]
    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await get_slack_client().aclose()


app = FastAPI(title='support-escalation-gateway', version='0.1.0', lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in get_settings().allowed_origins.split(',') if o.strip()],
    allow_methods=['*'],
    allow_headers=['*'],
    expose_headers=['X-Session-Id'],
)

app.include_router(health.router)
app.include_router(chat.router)
app.include_router(ws.router)
app.include_router(slack.router)
app.include_router(learning.router)
app.include_router(documents.router)
app.include_router(debug.router)
