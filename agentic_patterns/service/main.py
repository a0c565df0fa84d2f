"""
Agentic Patterns Service - Main FastAPI Application.

Provides API endpoints for:
- The five composition patterns (conditional, sequential, loop, parallel, supervisor)
- Answering pending human-feedback requests

Workflows are composed once at startup from a shared model adapter; every
request runs against a fresh scope.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from adapters.llm import LLMAdapter, create_adapter

from .. import __version__
from .config import PatternsConfig, config
from .errors import (
    AgentError,
    FeedbackTimeoutError,
    MissingInputError,
    ModelInvocationError,
    ResultParseError,
    WorkerPoolExhaustionError,
)
from .feedback import (
    ConsoleFeedbackChannel,
    FeedbackChannel,
    FeedbackManager,
    StaticFeedbackChannel,
)
from .models import (
    ContentRefinementRequest,
    ContentRefinementResponse,
    ErrorResponse,
    ExpertQueryRequest,
    ExpertQueryResponse,
    FeedbackAnswer,
    FeedbackRequestView,
    HealthCheckResponse,
    HumanInLoopRequest,
    HumanInLoopResponse,
    ParallelFlowRequest,
    ParallelFlowResponse,
    RecipeRequest,
    RecipeResponse,
)
from .workflows import (
    CONTENT_REFINER,
    EXPERT_ROUTER,
    INTERVIEW_SUPERVISOR,
    RECIPE_DEVELOPER,
    STARTUP_PITCHER,
    Workflow,
    build_workflows,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Track service start time for uptime
SERVICE_START_TIME = time.time()

API_PREFIX = "/api/v1"

INTERVIEW_REQUEST_TEMPLATE = (
    "Analyze this interview response:\n\n"
    "Candidate: {candidate_name}\n"
    "Position: {position}\n"
    "Question: {question}\n"
    "Response: {response}\n\n"
    "Provide AI coaching feedback, collect human interviewer feedback, "
    "and synthesize both into a final hiring assessment."
)


def create_feedback_channel(settings: PatternsConfig) -> FeedbackChannel:
    """Build the human-feedback channel selected by ``feedback_mode``."""
    if settings.feedback_mode == "api":
        return FeedbackManager(expires_in_seconds=settings.feedback_timeout_seconds)
    if settings.feedback_mode == "static":
        return StaticFeedbackChannel(settings.feedback_default_response)
    return ConsoleFeedbackChannel(settings.feedback_default_response)


def status_for(error: AgentError) -> int:
    """Map an engine error to an HTTP status code."""
    if isinstance(error, MissingInputError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, (ModelInvocationError, ResultParseError)):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(error, FeedbackTimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT
    if isinstance(error, WorkerPoolExhaustionError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_response(status_code: int, message: str, **kwargs: object) -> JSONResponse:
    body = ErrorResponse(status=status_code, message=message, **kwargs)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def create_app(
    settings: Optional[PatternsConfig] = None,
    llm: Optional[LLMAdapter] = None,
    channel: Optional[FeedbackChannel] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Service configuration (global config if omitted)
        llm: Model adapter (created from settings if omitted)
        channel: Human-feedback channel (created from settings if omitted)

    Returns:
        Configured application
    """
    settings = settings or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Lifespan context manager for FastAPI application.

        Handles startup and shutdown tasks.
        """
        # Startup
        logger.info("Starting Agentic Patterns service...")

        adapter = llm or create_adapter(
            provider=settings.llm_provider,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
        )
        feedback_channel = channel or create_feedback_channel(settings)
        logger.info(
            f"Configuration: LLM Provider={adapter.provider_name}, Model={adapter.model}, "
            f"Feedback={type(feedback_channel).__name__}"
        )

        if isinstance(feedback_channel, FeedbackManager):
            await feedback_channel.start()

        app.state.llm = adapter
        app.state.feedback_channel = feedback_channel
        app.state.workflows = build_workflows(
            adapter,
            feedback_channel,
            parallel_max_workers=settings.parallel_max_workers,
            parallel_acquire_timeout=settings.parallel_acquire_timeout_seconds,
            loop_max_iterations=settings.loop_max_iterations,
            loop_quality_threshold=settings.loop_quality_threshold,
            supervisor_max_steps=settings.supervisor_max_steps,
            feedback_timeout=settings.feedback_timeout_seconds,
            llm_timeout=settings.llm_timeout_seconds,
        )

        logger.info("Agentic Patterns service started successfully")
        yield

        # Shutdown
        logger.info("Shutting down Agentic Patterns service...")
        if isinstance(feedback_channel, FeedbackManager):
            await feedback_channel.stop()
        if llm is None:
            await adapter.close()
        logger.info("Agentic Patterns service shutdown complete")

    app = FastAPI(
        title="Agentic Patterns Service",
        description="Agent composition engine: sequence, conditional, loop, parallel and supervisor workflows",
        version=__version__,
        lifespan=lifespan,
    )

    register_exception_handlers(app)
    register_routes(app)
    return app


# ============================================================================
# Exception Handlers
# ============================================================================


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors."""
        errors = [
            f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
            for err in exc.errors()
        ]
        logger.warning(f"Validation error: {errors}")
        return _error_response(
            status.HTTP_400_BAD_REQUEST, "Validation failed", errors=errors
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Handle HTTP exceptions."""
        logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}")
        return _error_response(exc.status_code, str(exc.detail or "An error occurred"))

    @app.exception_handler(AgentError)
    async def agent_exception_handler(request: Request, exc: AgentError) -> JSONResponse:
        """Handle failures raised by a workflow."""
        status_code = status_for(exc)
        logger.error(f"Workflow failed ({exc.kind}) at agent '{exc.agent_id}': {exc.message}")
        return _error_response(
            status_code,
            exc.message,
            errors=[str(exc)],
            agent_id=exc.agent_id,
            error_kind=exc.kind,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle all other exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
            errors=[str(exc)],
        )


# ============================================================================
# API Endpoints
# ============================================================================


def _workflow(request: Request, name: str) -> Workflow:
    workflows: Dict[str, Workflow] = request.app.state.workflows
    return workflows[name]


def _feedback_manager(request: Request) -> FeedbackManager:
    channel = request.app.state.feedback_channel
    if not isinstance(channel, FeedbackManager):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Feedback API is disabled (set FEEDBACK_MODE=api)",
        )
    return channel


def register_routes(app: FastAPI) -> None:
    @app.get("/", response_model=Dict[str, str])
    async def root() -> Dict[str, str]:
        """Root endpoint with service information."""
        return {
            "service": "Agentic Patterns",
            "version": __version__,
            "status": "running",
            "docs": "/docs",
        }

    @app.get("/health", response_model=HealthCheckResponse)
    async def health_check(request: Request) -> HealthCheckResponse:
        """Health check endpoint."""
        adapter: LLMAdapter = request.app.state.llm
        workflows = sorted(request.app.state.workflows)
        return HealthCheckResponse(
            status="healthy" if workflows else "degraded",
            version=__version__,
            uptime_seconds=time.time() - SERVICE_START_TIME,
            llm_provider=adapter.provider_name,
            llm_model=adapter.model,
            workflows=workflows,
        )

    @app.post(
        f"{API_PREFIX}/patterns/conditional-routing/route",
        response_model=ExpertQueryResponse,
    )
    async def route_query(body: ExpertQueryRequest, request: Request) -> ExpertQueryResponse:
        """Classify a query and answer it with the matching expert."""
        logger.info(f"Received expert query ({len(body.query)} chars)")
        scope = await _workflow(request, EXPERT_ROUTER).execute(request=body.query)
        category = scope.read_state("category")
        return ExpertQueryResponse(
            response=scope.read_state("response", ""),
            category=category.value if category is not None else None,
        )

    @app.post(
        f"{API_PREFIX}/patterns/sequential-flow/develop-recipe",
        response_model=RecipeResponse,
    )
    async def develop_recipe(body: RecipeRequest, request: Request) -> RecipeResponse:
        """Develop a recipe in three sequential stages."""
        logger.info(f"Received recipe request: cuisine={body.cuisine}, mealType={body.meal_type}")
        recipe = await _workflow(request, RECIPE_DEVELOPER).invoke(
            cuisine=body.cuisine, dietary=body.dietary, mealType=body.meal_type
        )
        return RecipeResponse(recipe=recipe)

    @app.post(
        f"{API_PREFIX}/patterns/loop/refine-content",
        response_model=ContentRefinementResponse,
    )
    async def refine_content(
        body: ContentRefinementRequest, request: Request
    ) -> ContentRefinementResponse:
        """Create content and refine it until it scores high enough."""
        logger.info(f"Received content refinement request: topic={body.topic}")
        scope = await _workflow(request, CONTENT_REFINER).execute(
            topic=body.topic, style=body.style
        )
        return ContentRefinementResponse(
            content=scope.read_state("content", ""),
            score=scope.read_state("score"),
            iterations=scope.read_state("RefinementLoop.iterations"),
        )

    @app.post(
        f"{API_PREFIX}/patterns/parallel-flow/build-pitch",
        response_model=ParallelFlowResponse,
    )
    async def build_pitch(body: ParallelFlowRequest, request: Request) -> ParallelFlowResponse:
        """Build a startup pitch from three analyses run in parallel."""
        logger.info(f"Received pitch request for startup: {body.startup_name}")
        pitch = await _workflow(request, STARTUP_PITCHER).invoke(
            startupName=body.startup_name, idea=body.idea, targetMarket=body.target_market
        )
        return ParallelFlowResponse(pitch=pitch)

    @app.post(
        f"{API_PREFIX}/patterns/human-in-loop/submit-interview",
        response_model=HumanInLoopResponse,
    )
    async def submit_interview(
        body: HumanInLoopRequest, request: Request
    ) -> HumanInLoopResponse:
        """Coach, collect human feedback and assess an interview answer."""
        logger.info(
            f"Received interview response from candidate: {body.candidate_name}, "
            f"position: {body.position}"
        )
        interview_request = INTERVIEW_REQUEST_TEMPLATE.format(
            candidate_name=body.candidate_name,
            position=body.position,
            question=body.question,
            response=body.response,
        )
        scope = await _workflow(request, INTERVIEW_SUPERVISOR).execute(request=interview_request)

        logger.info(f"Completed interview assessment for candidate: {body.candidate_name}")
        return HumanInLoopResponse(
            candidate_name=body.candidate_name,
            position=body.position,
            coaching_feedback=scope.read_state("coachFeedback"),
            human_feedback=scope.read_state("humanFeedback"),
            final_assessment=scope.read_state("assessment", ""),
        )

    # ========================================================================
    # Human Feedback Endpoints
    # ========================================================================

    @app.get(f"{API_PREFIX}/feedback", response_model=List[FeedbackRequestView])
    async def list_pending_feedback(
        request: Request, invocation_id: Optional[str] = None
    ) -> List[FeedbackRequestView]:
        """List pending feedback requests."""
        manager = _feedback_manager(request)
        pending = await manager.list_pending(invocation_id)
        return [FeedbackRequestView.model_validate(r.model_dump()) for r in pending]

    @app.get(f"{API_PREFIX}/feedback/{{request_id}}", response_model=FeedbackRequestView)
    async def get_feedback_request(request_id: str, request: Request) -> FeedbackRequestView:
        """Get a feedback request by ID."""
        manager = _feedback_manager(request)
        feedback_request = await manager.get_request(request_id)
        if not feedback_request:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Feedback request {request_id} not found",
            )
        return FeedbackRequestView.model_validate(feedback_request.model_dump())

    @app.post(
        f"{API_PREFIX}/feedback/{{request_id}}/respond", response_model=FeedbackRequestView
    )
    async def respond_to_feedback(
        request_id: str, body: FeedbackAnswer, request: Request
    ) -> FeedbackRequestView:
        """Answer a pending feedback request and resume the waiting workflow."""
        manager = _feedback_manager(request)
        if await manager.get_request(request_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Feedback request {request_id} not found",
            )
        try:
            answered = await manager.respond(request_id, body.response, body.responder_id)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        return FeedbackRequestView.model_validate(answered.model_dump())

    @app.delete(f"{API_PREFIX}/feedback/{{request_id}}", response_model=FeedbackRequestView)
    async def cancel_feedback_request(request_id: str, request: Request) -> FeedbackRequestView:
        """Cancel a pending feedback request; the waiting workflow fails."""
        manager = _feedback_manager(request)
        if await manager.get_request(request_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Feedback request {request_id} not found",
            )
        try:
            cancelled = await manager.cancel(request_id, reason="Cancelled via API")
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        return FeedbackRequestView.model_validate(cancelled.model_dump())


# Create FastAPI application
app = create_app()


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for running the service."""
    import uvicorn

    logger.info("Starting Agentic Patterns service with uvicorn...")

    uvicorn.run(
        "agentic_patterns.service.main:app",
        host=config.host,
        port=config.port,
        reload=config.reload,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
