import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from app.api import sessions
from app.config import CORS_ORIGINS, LOG_LEVEL, STORAGE_BACKEND
from app.database.memory import InMemoryGateway
from app.database.mongodb import MongoGateway
from app.errors import InvalidTransitionError, NotFoundError, ValidationError
from app.models.session import SessionStatus
from app.services.feedback_aggregator import FeedbackAggregator
from app.services.session_lifecycle import SessionLifecycle
from app.services.turn_scheduler import TurnScheduler
from dialogue.llm.groq_client import GroqResponseGenerator

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_gateway():
    if STORAGE_BACKEND == "memory":
        logger.info("Using in-memory storage")
        return InMemoryGateway()
    return MongoGateway()


@asynccontextmanager
async def lifespan(app: FastAPI):
    gateway = app.state.gateway
    scheduler = app.state.scheduler

    await gateway.init()
    # Sessions left active by a previous run get their watchdog back
    for session in await gateway.list_sessions(SessionStatus.ACTIVE.value):
        scheduler.start_watchdog(session.session_id)

    yield

    await scheduler.shutdown()
    await gateway.close()
    logger.info("🛑 Shutdown complete")


def create_app(gateway=None, generator=None, clock=None, **scheduler_options) -> FastAPI:
    gateway = gateway or build_gateway()
    generator = generator or GroqResponseGenerator()

    app = FastAPI(title="Group Discussion Simulator", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if clock is not None:
        lifecycle = SessionLifecycle(gateway, clock=clock)
        scheduler = TurnScheduler(gateway, generator, clock=clock, **scheduler_options)
    else:
        lifecycle = SessionLifecycle(gateway)
        scheduler = TurnScheduler(gateway, generator, **scheduler_options)

    app.state.gateway = gateway
    app.state.generator = generator
    app.state.lifecycle = lifecycle
    app.state.scheduler = scheduler
    app.state.aggregator = FeedbackAggregator(generator)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def transition_handler(request: Request, exc: InvalidTransitionError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(PyMongoError)
    async def storage_handler(request: Request, exc: PyMongoError):
        logger.exception(f"Storage error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"detail": "Storage error"})

    app.include_router(sessions.router)

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    return app


app = create_app()
