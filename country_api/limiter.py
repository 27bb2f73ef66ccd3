import logging

from fastapi import Depends, FastAPI, Request, Response
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from redis.asyncio import Redis

from country_api.config import settings

logger = logging.getLogger("country_api.limiter")


def rate_limit(times: int, seconds: int):
    """Return a dependency that enforces a rate limit when Redis is configured; otherwise no-op."""
    if settings.REDIS_URL:
        limiter = RateLimiter(times=times, seconds=seconds)

        async def _limited(request: Request, response: Response):
            # Redis may have been unreachable at startup
            if getattr(request.app.state, "rate_limiting_enabled", False):
                await limiter(request, response)

        return Depends(_limited)

    async def _noop():
        return None

    return Depends(_noop)


async def init_rate_limiter(app: FastAPI) -> None:
    app.state.rate_limiting_enabled = False
    if not settings.REDIS_URL:
        logger.info("Rate limiting not enabled; REDIS_URL not set")
        return
    try:
        redis = Redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        await FastAPILimiter.init(redis)
    except Exception:
        logger.warning("Failed to initialize Redis rate limiter; continuing without limits", exc_info=True)
        return
    app.state.rate_limiting_enabled = True
    logger.info("Rate limiting enabled via Redis at %s", settings.REDIS_URL)


async def close_rate_limiter(app: FastAPI) -> None:
    if getattr(app.state, "rate_limiting_enabled", False):
        await FastAPILimiter.close()
