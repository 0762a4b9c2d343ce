# clickauction/main.py
from __future__ import annotations

import asyncio
from typing import Dict, Optional, Set

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from clickauction.domain.common.timers import LoopScheduler
from clickauction.domain.round import GameEngine
from clickauction.domain.stats import AllTimeStats
from clickauction.logging_config import configure_logging, get_logger
from clickauction.settings import Settings, get_settings
from clickauction.store.models import AllTimeRecord
from clickauction.store.stats_repo import FileStatsRepo, RedisStatsRepo, StatsRepo
from clickauction.transport.admin import router as admin_router
from clickauction.transport.broadcast import Broadcaster
from clickauction.transport.ws import router as ws_router
from clickauction.transport.ws_manager import WSManager

logger = get_logger(__name__)


def _build_repo(settings: Settings) -> tuple[StatsRepo, Optional[Redis]]:
    if settings.REDIS_URL:
        r = Redis.from_url(settings.REDIS_URL, decode_responses=False)
        return RedisStatsRepo(r, key=settings.STATS_REDIS_KEY), r
    return FileStatsRepo(settings.STATS_FILE), None


async def _housekeeping(app: FastAPI) -> None:
    """Periodic session sweep and stale per-connection cleanup."""
    settings: Settings = app.state.settings
    engine: GameEngine = app.state.engine
    wsman: WSManager = app.state.wsman

    sweep_every = settings.SESSION_SWEEP_INTERVAL_MS / 1000.0
    cleanup_every = settings.CLEANUP_INTERVAL_MS / 1000.0
    since_cleanup = 0.0

    while True:
        await asyncio.sleep(sweep_every)
        expired = engine.sweep_sessions()
        if expired:
            logger.info("Expired sessions swept", count=expired)

        since_cleanup += sweep_every
        if since_cleanup >= cleanup_every:
            since_cleanup = 0.0
            removed = engine.cleanup_stale(set(wsman.conn_ids()) | set(engine.players))
            if removed:
                logger.debug("Stale click tracking dropped", count=removed)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, json=settings.LOG_JSON)

    app = FastAPI(title=settings.APP_NAME)
    app.state.settings = settings
    allowed_origins = [o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()]
    if "null" not in allowed_origins:
        allowed_origins.append("null")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # strong refs to in-flight saves
    pending_saves: Set[asyncio.Task] = set()

    @app.on_event("startup")
    async def _startup() -> None:
        repo, r = _build_repo(settings)
        app.state.redis = r
        app.state.repo = repo

        stats = AllTimeStats(await repo.load())

        wsman = WSManager(max_per_ip=settings.MAX_CONNECTIONS_PER_IP)
        broadcaster = Broadcaster(wsman)
        broadcaster.start()

        def persist(records: Dict[str, AllTimeRecord], force: bool) -> None:
            task = asyncio.get_running_loop().create_task(repo.save(records, force=force))
            pending_saves.add(task)
            task.add_done_callback(_save_done)

        def _save_done(task: asyncio.Task) -> None:
            pending_saves.discard(task)
            if not task.cancelled() and task.exception() is not None:
                logger.error("Stats save crashed", error=str(task.exception()))

        app.state.wsman = wsman
        app.state.broadcaster = broadcaster
        app.state.engine = GameEngine(
            settings,
            scheduler=LoopScheduler(),
            stats=stats,
            on_state=broadcaster.publish,
            persist=persist,
        )
        app.state.housekeeping = asyncio.get_running_loop().create_task(_housekeeping(app))

        logger.info(
            "Server started",
            app=settings.APP_NAME,
            stats_backend="redis" if r is not None else "file",
            all_time_players=len(stats),
            max_players=settings.MAX_PLAYERS,
            host_pin=settings.HOST_PIN is not None,
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        engine: GameEngine = app.state.engine
        engine.shutdown()

        housekeeping: asyncio.Task = app.state.housekeeping
        housekeeping.cancel()
        try:
            await housekeeping
        except asyncio.CancelledError:
            pass

        if pending_saves:
            await asyncio.gather(*pending_saves, return_exceptions=True)
        if len(engine.stats):
            await app.state.repo.save(engine.stats.records())

        await app.state.broadcaster.stop()

        r: Optional[Redis] = app.state.redis
        if r is not None:
            await r.aclose()
        logger.info("Server stopped")

    @app.get("/health")
    async def health():
        engine: GameEngine = app.state.engine
        out = {
            "ok": True,
            "phase": engine.phase,
            "players": len(engine.players),
            "connections": app.state.wsman.count(),
        }
        r: Optional[Redis] = app.state.redis
        if r is not None:
            try:
                out["redis"] = str(await r.ping())
            except Exception as e:
                out["redis"] = f"error: {e}"
        return out

    app.include_router(ws_router)
    app.include_router(admin_router)
    return app


app = create_app()


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("clickauction.main:app", host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    main()
