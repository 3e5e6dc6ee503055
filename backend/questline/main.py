from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from questline.api.deps import game_manager
from questline.api.rest import router as rest_router

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Questline Werewolf Backend",
    version="0.1.0",
    description="Werewolf rules engine with AI seats and narration.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rest_router)


@app.get("/health")
def health() -> dict:
    return {
        "status": "ok",
        "service": "questline-werewolf",
        "summary": game_manager.health_summary(),
        "provider_configured": game_manager.pipeline.provider.configured,
    }


@app.on_event("shutdown")
async def cleanup_on_shutdown() -> None:
    try:
        await asyncio.to_thread(game_manager.shutdown_cleanup)
        logger.info("graceful shutdown cleanup completed: live games released")
    except Exception as exc:  # noqa: BLE001
        logger.exception("shutdown cleanup failed: %s", exc)
