"""
FastAPI application for the topic voting API.

Routes HTTP requests to the topic registry and vote ledger; the store
adapter is built per application and connected for the app's lifetime.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.routing import Match

from .config import Settings, settings
from .errors import StoreUnavailable, VotingError
from .ledger import VoteLedger
from .models import (
    ErrorResponse,
    HealthResponse,
    ResultsResponse,
    TopicCreatedResponse,
    TopicDescriptionResponse,
    TopicRequest,
    VoteRequest,
    VoteResponse,
)
from .observability import Instrumentation, request_duration
from .registry import TopicRegistry
from .store import RedisStore, StoreAdapter

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or invalid field"},
    404: {"model": ErrorResponse, "description": "Topic not found"},
    500: {"model": ErrorResponse, "description": "Store unavailable"},
}


def get_registry(request: Request) -> TopicRegistry:
    return request.app.state.registry


def get_ledger(request: Request) -> VoteLedger:
    return request.app.state.ledger


def _endpoint_label(request: Request) -> str:
    """Route template for metric labels, so topic names do not explode cardinality."""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return "unmatched"


def create_app(
    app_settings: Optional[Settings] = None,
    store: Optional[StoreAdapter] = None,
    instrumentation: Optional[Instrumentation] = None,
) -> FastAPI:
    """
    Build the API around an injected store.

    Args:
        app_settings: Settings to use (module settings by default)
        store: Store adapter; a RedisStore from settings when omitted
        instrumentation: Hooks wrapped around every core operation

    Returns:
        Configured FastAPI application. The store is connected on startup and
        closed on shutdown by the lifespan handler.
    """
    cfg = app_settings or settings
    store = store or RedisStore.from_settings(cfg)
    instrumentation = instrumentation or Instrumentation()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events."""
        logger.info(f"Starting {cfg.SERVICE_NAME} service...")
        try:
            await app.state.store.connect()
            logger.info(f"{cfg.SERVICE_NAME} started successfully")
        except Exception as e:
            logger.error(f"Failed to start {cfg.SERVICE_NAME}: {e}")
            raise

        yield

        logger.info(f"Shutting down {cfg.SERVICE_NAME} service...")
        await app.state.store.close()
        logger.info(f"{cfg.SERVICE_NAME} shut down successfully")

    app = FastAPI(
        title="Topic Voting API",
        description="Create topics, collect agree/not_agree votes and tally results",
        version=cfg.API_VERSION,
        lifespan=lifespan
    )

    app.state.settings = cfg
    app.state.store = store
    app.state.registry = TopicRegistry(
        store,
        voting_base_url=cfg.VOTING_UI_BASE_URL,
        topics_key=cfg.TOPICS_KEY,
        votes_key=cfg.VOTES_KEY,
        instrumentation=instrumentation,
    )
    app.state.ledger = VoteLedger.from_settings(store, cfg, instrumentation=instrumentation)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.CORS_ORIGINS,
        allow_credentials=cfg.CORS_ALLOW_CREDENTIALS,
        allow_methods=cfg.CORS_ALLOW_METHODS,
        allow_headers=cfg.CORS_ALLOW_HEADERS,
    )

    # Add rate limiter
    limiter = Limiter(key_func=get_remote_address)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(VotingError)
    async def voting_error_handler(request: Request, exc: VotingError):
        """Map core failures onto their HTTP status."""
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        body = ErrorResponse(error=exc.error_type, message=exc.message, details=exc.details)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Malformed bodies are client errors like missing fields: 400, not 422."""
        logger.warning(f"Invalid request body for {request.url.path}")
        body = ErrorResponse(
            error="InvalidInput",
            message="Invalid request body",
            details={"errors": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                for err in exc.errors()
            ]},
        )
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())

    @app.middleware("http")
    async def prometheus_middleware(request: Request, call_next):
        """Middleware to track request duration."""
        start = time.perf_counter()
        response = await call_next(request)
        request_duration.labels(
            method=request.method,
            endpoint=_endpoint_label(request),
            status=response.status_code
        ).observe(time.perf_counter() - start)
        return response

    @app.post("/api/topics", response_model=TopicCreatedResponse, responses=ERROR_RESPONSES)
    @limiter.limit(cfg.RATE_LIMIT)
    async def create_topic(
        request: Request,
        body: TopicRequest,
        registry: TopicRegistry = Depends(get_registry),
    ) -> TopicCreatedResponse:
        """
        Create a topic and open it for voting.

        - **topic**: Unique topic name
        - **description**: What is being voted on

        Returns the URL voters use to reach the topic.
        """
        created = await registry.register(body.topic, body.description)
        return TopicCreatedResponse(votingUrl=created.voting_url)

    @app.get(
        "/api/topics/{topic}/vote",
        response_model=TopicDescriptionResponse,
        responses=ERROR_RESPONSES
    )
    async def get_topic(
        topic: str,
        registry: TopicRegistry = Depends(get_registry),
    ) -> TopicDescriptionResponse:
        """Get a topic's description."""
        description = await registry.describe(topic)
        return TopicDescriptionResponse(topic=topic, description=description)

    @app.post("/api/topics/{topic}/vote", response_model=VoteResponse, responses=ERROR_RESPONSES)
    @limiter.limit(cfg.RATE_LIMIT)
    async def submit_vote(
        request: Request,
        topic: str,
        body: VoteRequest,
        ledger: VoteLedger = Depends(get_ledger),
    ) -> VoteResponse:
        """
        Record a vote on a topic.

        - **vote**: agree or not_agree
        - **name**: Voter name
        """
        await ledger.append_ballot(topic, body.name, body.vote)
        return VoteResponse()

    @app.get(
        "/api/topics/{topic}/results",
        response_model=ResultsResponse,
        responses=ERROR_RESPONSES
    )
    async def get_results(
        topic: str,
        ledger: VoteLedger = Depends(get_ledger),
    ) -> ResultsResponse:
        """Get agree/not_agree counts and ballots for a topic."""
        tally = await ledger.tally(topic)
        return ResultsResponse(**tally.to_dict())

    @app.get(
        "/api/health",
        response_model=HealthResponse,
        responses={503: {"model": HealthResponse, "description": "Service unhealthy"}}
    )
    async def health_check(request: Request):
        """Check health of the service and its store."""
        services = {}
        try:
            healthy = await request.app.state.store.ping()
            services["redis"] = "connected" if healthy else "disconnected"
        except StoreUnavailable as e:
            logger.error(f"Store health check error: {e}")
            services["redis"] = "disconnected"

        all_healthy = all(value == "connected" for value in services.values())
        response = HealthResponse(
            status="healthy" if all_healthy else "unhealthy",
            services=services,
            timestamp=datetime.now(timezone.utc)
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json")
        )

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST
        )

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "service": cfg.SERVICE_NAME,
            "version": cfg.API_VERSION,
            "status": "running",
            "endpoints": {
                "create_topic": "/api/topics",
                "topic": "/api/topics/{topic}/vote",
                "vote": "/api/topics/{topic}/vote",
                "results": "/api/topics/{topic}/results",
                "health": "/api/health",
                "metrics": "/metrics"
            }
        }

    return app


app = create_app()


def run() -> None:
    """Serve the module-level app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "voting_api.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    run()
