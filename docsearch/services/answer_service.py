"""
Answer generation layered on top of retrieval.
The ranked hits become the only context the chat model may use.
"""
import asyncio
from time import perf_counter
from typing import List, Optional

from openai import OpenAI, OpenAIError

from ..errors import ProviderError
from ..logging_config import logger
from ..schemas import AskResponse, SearchHit, Source
from .retrieval import RetrievalRanker

MAX_CONTEXT_CHARS = 16000

NO_INFO_MESSAGE = "I don't have information about that in the uploaded documents."

SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer the question based only on the provided context. "
    "If the answer cannot be found in the context, say: "
    f"\"{NO_INFO_MESSAGE}\""
)


def build_context(hits: List[SearchHit], max_chars: int = MAX_CONTEXT_CHARS) -> str:
    """
    Join hit contents, nearest first, and cap the total length.

    Args:
        hits: Ranked hits
        max_chars: Hard cap on the returned string

    Returns:
        Context string for the prompt
    """
    context = "\n\n".join(h.content for h in hits if h.content)
    return context[:max_chars]


def _sources(hits: List[SearchHit]) -> List[Source]:
    return [
        Source(
            document_id=h.document_id,
            filename=h.filename,
            granularity=h.granularity,
            chunk_index=h.chunk_index,
            score=round(h.score, 3),
            metadata=h.metadata,
        )
        for h in hits
    ]


class AnswerService:
    def __init__(self, ranker: RetrievalRanker, client: Optional[OpenAI], default_model: str):
        self.ranker = ranker
        self.client = client
        self.default_model = default_model

    async def ask(self, question: str, limit: int = 5, model: Optional[str] = None) -> AskResponse:
        hits = await self.ranker.search(question, limit)
        if not hits:
            logger.info("No documents matched; answering without model", question=question[:50])
            return AskResponse(answer=NO_INFO_MESSAGE, model=None, sources=[])

        model_name = model or self.default_model
        context = build_context(hits)
        answer = await asyncio.to_thread(self._complete, model_name, question, context)
        return AskResponse(answer=answer, model=model_name, sources=_sources(hits))

    def _complete(self, model_name: str, question: str, context: str) -> str:
        if self.client is None:
            raise ProviderError("OPENAI_API_KEY is not set; answers are unavailable")

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    "Context information is below.\n"
                    "---------------------\n"
                    f"{context}\n"
                    "---------------------\n"
                    "Given the context information and not prior knowledge, "
                    f"answer the following question: {question}"
                ),
            },
        ]
        t = perf_counter()
        logger.info("Sending to LLM", model=model_name, context_length=len(context))
        try:
            completion = self.client.chat.completions.create(
                model=model_name,
                messages=messages,
                temperature=0.2,
            )
        except OpenAIError as e:
            raise ProviderError(f"Chat completion failed: {e}", cause=e, context={"model": model_name})
        logger.info("Received response from LLM", time_ms=round((perf_counter() - t) * 1000, 2))
        return (completion.choices[0].message.content or "").strip()
