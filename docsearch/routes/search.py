"""
Query API routes.
Semantic search over documents and chunks, and answers grounded in the hits.
"""
from fastapi import APIRouter, Depends

from ..container import Services
from ..logging_config import logger
from ..schemas import AskBody, AskResponse, SearchBody, SearchResponse
from .deps import get_services

router = APIRouter(prefix="/api", tags=["search"])


@router.post("/search", response_model=SearchResponse)
async def search(payload: SearchBody, services: Services = Depends(get_services)):
    """
    Rank documents and chunks by vector distance to the query.

    Hits are ordered nearest first; a document may appear both as a
    document-level and as a chunk-level hit. Any failure returns one error
    and no hits.
    """
    logger.info("Processing search", query=payload.query[:50], limit=payload.limit)
    hits = await services.ranker.search(payload.query, payload.limit)
    return SearchResponse(hits=hits)


@router.post("/ask", response_model=AskResponse)
async def ask(payload: AskBody, services: Services = Depends(get_services)):
    """Answer a question using only the top-ranked hits as context."""
    logger.info("Processing question", question=payload.question[:50], limit=payload.limit)
    return await services.answers.ask(payload.question, payload.limit, payload.model)
