"""
Pydantic schemas for request/response validation.
"""
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

Granularity = Literal["document", "chunk"]


class SearchHit(BaseModel):
    """One ranked result; built per query, never stored."""
    document_id: str
    filename: str
    content: str = ""
    distance: float
    score: float = Field(..., description="Cosine similarity, 1 - distance")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    granularity: Granularity
    chunk_index: Optional[int] = None


class SearchBody(BaseModel):
    """Request body for semantic search."""
    query: str = Field(..., min_length=1, description="Free-text query")
    limit: int = Field(5, ge=1, le=50, description="Maximum number of hits")


class SearchResponse(BaseModel):
    hits: List[SearchHit]


class AskBody(BaseModel):
    """Request body for asking questions over the indexed documents."""
    question: str = Field(..., min_length=1, description="The question to ask")
    limit: int = Field(5, ge=1, le=20, description="Number of hits used as context")
    model: Optional[str] = Field(None, description="OpenAI chat model; server default when omitted")


class Source(BaseModel):
    """A hit that was handed to the model as context."""
    document_id: str
    filename: str
    granularity: Granularity
    chunk_index: Optional[int] = None
    score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AskResponse(BaseModel):
    answer: str
    model: Optional[str] = None
    sources: List[Source]


class UploadSuccess(BaseModel):
    filename: str
    document_id: str


class UploadFailure(BaseModel):
    filename: str
    error: str
    code: Optional[str] = None


class UploadResponse(BaseModel):
    ok: bool
    status: Literal["success", "partial", "failed"]
    succeeded: List[UploadSuccess]
    failed: List[UploadFailure]
