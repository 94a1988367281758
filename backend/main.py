import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from config import settings

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Impostor backend starting up...")
    yield
    await shutdown_game_runtime()
    logger.info("Backend shutting down.")


app = FastAPI(
    title="Impostor",
    version="0.1.0",
    description="Real-time impostor word party game — sessions, rounds, timers and stats",
    lifespan=lifespan,
)

_origins = list(settings.allowed_origins)
if settings.extra_origin:
    _origins.append(settings.extra_origin)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "impostor", "version": "0.1.0"}


from routers.game_router import router as game_router
from routers.ws_router import router as ws_router
from services.game_runtime import shutdown_game_runtime

app.include_router(game_router, prefix="/api")
app.include_router(ws_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
