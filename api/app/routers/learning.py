from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.config import Settings, get_settings
from app.dependencies import get_learning_store
from app.schemas import LearnedPairOut, LearningStatsOut
from app.services.learning_service import LearningStore

router = APIRouter(prefix='/api/learning')


@router.get('/qa-pairs', response_model=list[LearnedPairOut])
async def qa_pairs(
    limit: int = Query(default=20, ge=1, le=500),
    learning: LearningStore = Depends(get_learning_store),
) -> list[LearnedPairOut]:
    rows = await learning.top_pairs(limit=limit)
    return [LearnedPairOut.model_validate(r, from_attributes=True) for r in rows]


@router.get('/stats', response_model=LearningStatsOut)
async def stats(learning: LearningStore = Depends(get_learning_store)) -> LearningStatsOut:
    return LearningStatsOut(**await learning.stats())


@router.post('/update-markdown')
async def update_markdown(
    learning: LearningStore = Depends(get_learning_store),
    settings: Settings = Depends(get_settings),
) -> dict:
    count = await learning.write_markdown(settings.learned_markdown_path)
    return {'ok': True, 'pairs': count, 'path': settings.learned_markdown_path}
