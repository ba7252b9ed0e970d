# socialflow/main.py
import os
import uvicorn
from fastapi import FastAPI
from socialflow.routers.auth_router import router as auth_router
from socialflow.routers.user_router import router as user_router
from socialflow.routers.accounts_router import router as accounts_router
from socialflow.routers.stats_router import router as stats_router
from socialflow.routers.cron_router import router as cron_router
from socialflow.infrastructure.database import init_db
from socialflow.infrastructure.redis_cache import close_redis, redis_client
from socialflow.infrastructure.token_cipher import get_token_cipher
from socialflow.UAA.utils import get_secret_key
from socialflow.middleware.errors import register_error_handlers
from socialflow.middleware.logging import RequestIdMiddleware
from socialflow.middleware.rate_limit import RateLimitMiddleware
import structlog

def configure_structlog():
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
    )

configure_structlog()
logger = structlog.get_logger()

app = FastAPI(title="Social Flow")
app.state.redis = redis_client

# outermost last: request id is bound before rate limiting runs
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestIdMiddleware)

register_error_handlers(app)

app.include_router(auth_router)
app.include_router(user_router)
app.include_router(accounts_router)
app.include_router(stats_router)
app.include_router(cron_router)

@app.on_event("startup")
async def on_startup():
    # refuse to start without TOKEN_ENCRYPTION_KEY or SECRET_KEY
    get_token_cipher()
    get_secret_key()
    await init_db()
    logger.info("app_startup")

@app.on_event("shutdown")
async def on_shutdown():
    await close_redis(app.state.redis)
    logger.info("app_shutdown")

if __name__ == "__main__":
    uvicorn.run("socialflow.main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)), reload=True)
