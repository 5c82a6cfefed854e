# CookShare API Main Entry Point
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .settings import settings
from .infra.rate_limit import limiter
from .infra.redis_client import close_redis
from .timers import timer_registry
from .routers.ready import router as ready_router
from .routers.users import router as users_router
from .routers.recipes import router as recipes_router
from .routers.ingredients import router as ingredients_router
from .routers.instructions import router as instructions_router
from .routers.collaborators import router as collaborators_router
from .routers.timers import router as timers_router

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("cookshare")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("CookShare API starting")
    yield
    # In-flight timers and alert callbacks belong to the loop that is going away
    timer_registry.shutdown()
    await close_redis()
    logger.info("CookShare API stopped")


app = FastAPI(title="CookShare API", version="0.1.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ready_router, prefix="/api", tags=["ready"])
app.include_router(users_router, prefix="/api", tags=["users"])
app.include_router(recipes_router, prefix="/api", tags=["recipes"])
app.include_router(ingredients_router, prefix="/api", tags=["ingredients"])
app.include_router(instructions_router, prefix="/api", tags=["instructions"])
app.include_router(collaborators_router, prefix="/api", tags=["collaborators"])
app.include_router(timers_router, prefix="/api", tags=["timers"])
