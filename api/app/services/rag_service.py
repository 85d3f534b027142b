from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import get_settings
from app.services.embedding_service import embed_text
from app.services.llm_service import generate_answer
from app.services.retrieval_service import RetrievedChunk, retrieve

logger = logging.getLogger(__name__)

SOURCE_EXCERPT_CHARS = 200


@dataclass
class SourceFragment:
    content: str
    source: str
    type: str

    def as_dict(self) -> dict:
        return {'content': self.content, 'source': self.source, 'type': self.type}


@dataclass
class AnswerCandidate:
    text: str
    sources: list[SourceFragment] = field(default_factory=list)


def to_fragment(chunk: RetrievedChunk) -> SourceFragment:
    text = chunk.text
    excerpt = text[:SOURCE_EXCERPT_CHARS] + '...' if len(text) > SOURCE_EXCERPT_CHARS else text
    return SourceFragment(content=excerpt, source=chunk.title or chunk.source, type=chunk.source_type)


class RagPipeline:
    """Retrieval over the document corpus followed by grounded generation."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def generate(self, question: str, order_context: list[dict] | None = None) -> AnswerCandidate:
        settings = get_settings()
        chunks: list[RetrievedChunk] = []
        vector = await embed_text(question)
        if vector is not None:
            async with self.session_factory() as db:
                chunks = await retrieve(db, vector, settings.retrieval_top_k)
        else:
            logger.info('no query embedding; generating without retrieval', extra={'event': 'retrieval_skipped'})

        answer = await generate_answer(question, chunks, order_context=order_context)
        return AnswerCandidate(text=answer.answer, sources=[to_fragment(c) for c in answer.used_chunks])
