"""Pydantic models for request/response validation."""
from datetime import datetime, timezone
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TopicRequest(BaseModel):
    """Topic creation request model.

    Fields are optional here so that missing and blank values reach the
    registry, which rejects both the same way.
    """

    topic: Optional[str] = Field(default=None, description="Unique, case-sensitive topic name")
    description: Optional[str] = Field(default=None, description="What is being voted on")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "topic": "pizza",
            "description": "Is pizza a vegetable?"
        }
    })


class TopicCreatedResponse(BaseModel):
    """Topic creation response model."""

    message: str = Field(default="Topic created!", description="Response message")
    votingUrl: str = Field(..., description="Where voters cast ballots for this topic")


class TopicDescriptionResponse(BaseModel):
    """Topic lookup response model."""

    topic: str
    description: str


class VoteRequest(BaseModel):
    """Vote submission request model."""

    vote: Optional[str] = Field(default=None, description="Vote choice: agree or not_agree")
    name: Optional[str] = Field(default=None, description="Voter name")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "vote": "agree",
            "name": "Alice"
        }
    })


class VoteResponse(BaseModel):
    """Vote submission response model."""

    message: str = Field(default="Vote counted!", description="Response message")


class BallotOut(BaseModel):
    """One recorded ballot."""

    name: str
    vote: str


class VotesByChoice(BaseModel):
    agree: List[BallotOut] = Field(default_factory=list)
    notAgree: List[BallotOut] = Field(default_factory=list)


class ResultsResponse(BaseModel):
    """Vote results response model."""

    topic: str = Field(..., description="Topic name")
    countAgree: int = Field(..., description="Count of 'agree' votes")
    countNotAgree: int = Field(..., description="Count of 'not_agree' votes")
    votes: VotesByChoice

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "topic": "pizza",
            "countAgree": 1,
            "countNotAgree": 1,
            "votes": {
                "agree": [{"name": "Alice", "vote": "agree"}],
                "notAgree": [{"name": "Bob", "vote": "not_agree"}]
            }
        }
    })


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "unhealthy"] = Field(..., description="Overall health status")
    services: dict = Field(..., description="Status of individual services")
    timestamp: datetime = Field(default_factory=_utcnow, description="Health check timestamp")


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict = Field(default_factory=dict, description="Additional error details")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": "InvalidInput",
            "message": "Topic and description are required",
            "details": {}
        }
    })
