from __future__ import annotations

import hashlib
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.db.models import Chunk, Document, Embedding
from app.services.embedding_service import embed_text
from app.services.retrieval_service import RetrievedChunk, retrieve

logger = logging.getLogger(__name__)

SOURCE_TYPES = ('faq', 'csv', 'xlsx', 'documentation')


class EmbeddingUnavailableError(RuntimeError):
    pass


def sha256_text(value: str) -> str:
    return hashlib.sha256(value.encode('utf-8')).hexdigest()


def split_by_heading(text: str, max_chars: int = 1200) -> list[tuple[str | None, str]]:
    """Split markdown-ish text into (heading path, body) chunks of at most ~max_chars."""
    headings: list[str] = []
    current: list[str] = []
    size = 0
    chunks: list[tuple[str | None, str]] = []

    def flush() -> None:
        nonlocal current, size
        body = '\n'.join(current).strip()
        if body:
            chunks.append((' > '.join(headings) or None, body))
        current = []
        size = 0

    for line in text.splitlines():
        if line.startswith('#'):
            flush()
            level = len(line) - len(line.lstrip('#'))
            del headings[level - 1:]
            headings.append(line.lstrip('#').strip())
            continue
        current.append(line)
        size += len(line)
        if size >= max_chars:
            flush()

    flush()
    return chunks


def infer_source_type(source: str) -> str:
    lowered = source.lower()
    if 'faq' in lowered:
        return 'faq'
    if lowered.endswith('.csv'):
        return 'csv'
    if lowered.endswith(('.xlsx', '.xls')):
        return 'xlsx'
    return 'documentation'


async def add_document(
    db: AsyncSession,
    content: str,
    source: str,
    source_type: str | None = None,
    title: str | None = None,
) -> tuple[Document, int]:
    content_hash = sha256_text(content)
    existing = await db.scalar(select(Document).where(Document.content_hash == content_hash))
    if existing:
        return existing, 0

    document = Document(
        title=title or source,
        source=source,
        source_type=source_type or infer_source_type(source),
        content_hash=content_hash,
    )
    db.add(document)
    await db.flush()

    model = get_settings().ollama_embed_model
    count = 0
    for position, (heading, body) in enumerate(split_by_heading(content)):
        vector = await embed_text(body)
        if vector is None:
            await db.rollback()
            raise EmbeddingUnavailableError('embedding provider unavailable')
        chunk = Chunk(document_id=document.id, position=position, heading_path=heading, text=body)
        db.add(chunk)
        await db.flush()
        db.add(Embedding(chunk_id=chunk.id, model=model, vector=vector))
        count += 1

    await db.commit()
    logger.info(
        'document added',
        extra={'event': 'document_added', 'document_id': str(document.id), 'chunks': count},
    )
    return document, count


async def search(db: AsyncSession, query: str, limit: int) -> list[RetrievedChunk]:
    vector = await embed_text(query)
    if vector is None:
        raise EmbeddingUnavailableError('embedding provider unavailable')
    return await retrieve(db, vector, limit)
