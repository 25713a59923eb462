from contextlib import asynccontextmanager
from fastapi import FastAPI

from vtoken.infrastructure.db.pool import get_pool, close_pool
from vtoken.infrastructure.redis_cache.pool import get_redis, close_redis
from vtoken.logging import setup_logging
from vtoken.presentation.api import api
from vtoken.settings import get_settings

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    pool = get_pool()
    if getattr(pool, "closed", True):
        await pool.open()

    get_redis()

    try:
        yield
    finally:
        # shutdown
        await close_redis()
        await close_pool()


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    app = FastAPI(title="Verification Token API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.include_router(api)
    return app


app = create_app()
