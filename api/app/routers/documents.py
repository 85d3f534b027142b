from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas import DocumentCreateRequest, DocumentCreateResponse, SearchHit, SearchRequest
from app.services.document_service import EmbeddingUnavailableError, add_document, search

router = APIRouter(prefix='/api')


@router.post('/documents', response_model=DocumentCreateResponse)
async def create_document(req: DocumentCreateRequest, db: AsyncSession = Depends(get_db)) -> DocumentCreateResponse:
    if not req.content.strip():
        raise HTTPException(status_code=400, detail='content is required')
    try:
        document, chunks = await add_document(db, req.content, req.source, req.source_type, req.title)
    except EmbeddingUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return DocumentCreateResponse(document_id=document.id, chunks=chunks)


@router.post('/search', response_model=list[SearchHit])
async def search_documents(req: SearchRequest, db: AsyncSession = Depends(get_db)) -> list[SearchHit]:
    if not req.query.strip():
        raise HTTPException(status_code=400, detail='query is required')
    try:
        hits = await search(db, req.query, req.limit)
    except EmbeddingUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return [SearchHit(**vars(h)) for h in hits]
