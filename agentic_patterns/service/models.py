"""
Pydantic models for the Agentic Patterns service.

Request and response contracts for the pattern endpoints, the feedback API,
errors and health checks. JSON field names are camelCase.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .feedback import FeedbackStatus


class CamelModel(BaseModel):
    """Base model serialised with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# ============================================================================
# Pattern Requests
# ============================================================================


class ExpertQueryRequest(CamelModel):
    """Request for the conditional routing pattern."""

    query: str = Field(..., min_length=3, max_length=1000, description="Question to route")


class RecipeRequest(CamelModel):
    """Request for the sequential flow pattern."""

    cuisine: str = Field(..., min_length=2, max_length=100)
    dietary: str = Field(..., min_length=2, max_length=200, description="Dietary preferences")
    meal_type: str = Field(..., min_length=2, max_length=50)


class ContentRefinementRequest(CamelModel):
    """Request for the loop pattern."""

    topic: str = Field(..., min_length=2, max_length=200)
    style: str = Field(..., min_length=2, max_length=100)


class ParallelFlowRequest(CamelModel):
    """Request for the parallel flow pattern."""

    startup_name: str = Field(..., min_length=2, max_length=100)
    idea: str = Field(..., min_length=10, max_length=500, description="Idea/product description")
    target_market: str = Field(..., min_length=5, max_length=200)


class HumanInLoopRequest(CamelModel):
    """Request for the human-in-the-loop interview pattern."""

    candidate_name: str = Field(..., min_length=2, max_length=100)
    position: str = Field(..., min_length=2, max_length=100)
    question: str = Field(..., min_length=10, max_length=500, description="Interview question")
    response: str = Field(..., min_length=10, max_length=2000, description="Candidate response")


# ============================================================================
# Pattern Responses
# ============================================================================


class ExpertQueryResponse(CamelModel):
    """Expert answer."""

    response: str
    category: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class RecipeResponse(CamelModel):
    """Developed recipe with nutritional analysis."""

    recipe: str


class ContentRefinementResponse(CamelModel):
    """Refined content."""

    content: str
    score: Optional[float] = None
    iterations: Optional[int] = None


class ParallelFlowResponse(CamelModel):
    """Combined startup pitch document."""

    pitch: str


class HumanInLoopResponse(CamelModel):
    """Interview assessment with its intermediate feedback."""

    candidate_name: str
    position: str
    coaching_feedback: Optional[str] = None
    human_feedback: Optional[str] = None
    final_assessment: str


# ============================================================================
# Feedback API
# ============================================================================


class FeedbackRequestView(CamelModel):
    """Feedback request as shown to reviewers."""

    id: str
    invocation_id: Optional[str] = None
    prompt: str
    status: FeedbackStatus
    requested_at: datetime
    expires_at: Optional[datetime] = None
    response: Optional[str] = None
    responder_id: Optional[str] = None
    responded_at: Optional[datetime] = None


class FeedbackAnswer(CamelModel):
    """Reviewer's answer to a pending feedback request."""

    response: str = Field(..., min_length=1, max_length=4000)
    responder_id: Optional[str] = Field(None, max_length=100)


# ============================================================================
# Service Models
# ============================================================================


class HealthCheckResponse(CamelModel):
    """Health check response."""

    status: str = Field(..., description="Service status (healthy, degraded)")
    version: str = Field(..., description="Service version")
    uptime_seconds: float = Field(..., ge=0.0)
    llm_provider: str
    llm_model: str
    workflows: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ErrorResponse(BaseModel):
    """Standard error response."""

    message: str = Field(..., description="Human-readable error message")
    status: int = Field(..., description="HTTP status code")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    errors: List[str] = Field(default_factory=list, description="Individual error details")
    agent_id: Optional[str] = Field(None, description="Agent that failed")
    error_kind: Optional[str] = Field(None, description="Machine-readable error kind")

