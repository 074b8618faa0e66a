from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi_pagination import add_pagination

from review_bridge.config import get_settings
from review_bridge.core.app_state import BridgeState
from review_bridge.infra.logging_config import LoggingConfig, get_logger
from review_bridge.routers.events_router import events_router
from review_bridge.routers.rooms_router import rooms_router
from review_bridge.routers.system import router as system_router
from review_bridge.routers.threads_router import threads_router
from review_bridge.tasks.reaper import BridgeReaper

logger = get_logger("main")


def create_app(testing: bool = False, state: Optional[BridgeState] = None) -> FastAPI:
    LoggingConfig()
    settings = get_settings()
    bridge = state or BridgeState(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        reaper = BridgeReaper(bridge)
        app.state.reaper = reaper
        if not testing:
            reaper.start()
        logger.info("Review bridge ready (%s store)", bridge.settings.store_backend)
        yield
        await reaper.stop()
        await bridge.threads.scheduler.shutdown()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.bridge = bridge

    app.include_router(events_router)
    app.include_router(threads_router)
    app.include_router(rooms_router)
    app.include_router(system_router)
    add_pagination(app)
    return app


app = create_app()
