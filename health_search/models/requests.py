"""
Request models for the health search API
"""
from pydantic import BaseModel, Field
from typing import Any, Optional


class QueryOptions(BaseModel):
    """Caller-tunable search options"""

    limit: Optional[int] = Field(
        default=None,
        ge=1,
        description="Number of results to return (clamped to the hard cap)"
    )
    min_relevance_score: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=1.0,
        alias="minRelevanceScore",
        description="Drop results scoring below this value"
    )

    class Config:
        populate_by_name = True


class QueryRequest(BaseModel):
    """Request model for the query endpoint"""

    # Typed loosely so length and type problems surface as VALIDATION_ERROR
    # from the pipeline rather than a schema error
    query: Any = Field(default=None, description="Natural-language health question")
    options: Optional[QueryOptions] = None

    class Config:
        json_schema_extra = {
            "example": {
                "query": "How can I improve my sleep?",
                "options": {"limit": 5, "minRelevanceScore": 0.1}
            }
        }
