import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from config import settings

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

from agents.turn_coordinator import InvalidAction, coordinator
from services.session_service import SessionNotFound
from routers.game_router import router as game_router
from routers.ws_router import router as ws_router, hub as ws_hub


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Secret Impostor backend starting up ({len(settings.words)} words, "
                f"{settings.total_rounds} rounds)")
    # Every committed transition is pushed to connected viewers
    coordinator.broadcaster = ws_hub.broadcast_state
    yield
    await coordinator.shutdown()
    logger.info("Backend shutting down.")


app = FastAPI(
    title="Secret Impostor",
    version="0.1.0",
    description="Three-player word deduction game: one impostor, two innocents, AI opponents",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(SessionNotFound)
async def session_not_found_handler(request: Request, exc: SessionNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidAction)
async def invalid_action_handler(request: Request, exc: InvalidAction):
    logger.info(f"Rejected {request.method} {request.url.path}: {exc.code} ({exc})")
    return JSONResponse(status_code=409, content={"detail": {"code": exc.code, "message": str(exc)}})


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "secret-impostor", "advisor": coordinator.advisor.name}


app.include_router(game_router, prefix="/api")
app.include_router(ws_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
