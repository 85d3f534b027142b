from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class SourceOut(BaseModel):
    content: str
    source: str
    type: str


class ChatRequest(BaseModel):
    question: str = ''


class ChatResponse(BaseModel):
    answer: str
    sources: list[SourceOut] = Field(default_factory=list)
    timestamp: datetime
    session_id: str
    type: str
    confidence: float | None = None
    escalation: bool = False
    thread_ts: str | None = None
    order_analysis: dict[str, Any] | None = None


class LearnedPairOut(BaseModel):
    id: UUID
    question: str
    answer: str
    usage_count: int
    answered_by: str | None = None
    last_used_at: datetime | None = None
    updated_at: datetime


class LearningStatsOut(BaseModel):
    total_pairs: int
    total_usage: int
    average_usage: float
    with_embedding: int


class DocumentCreateRequest(BaseModel):
    content: str
    source: str = 'manual'
    source_type: str | None = None
    title: str | None = None


class DocumentCreateResponse(BaseModel):
    document_id: UUID
    chunks: int


class SearchRequest(BaseModel):
    query: str
    limit: int = Field(default=5, ge=1, le=50)


class SearchHit(BaseModel):
    chunk_id: UUID
    document_id: UUID
    title: str
    source: str
    source_type: str
    heading_path: str | None = None
    text: str
    score: float


class BroadcastRequest(BaseModel):
    message: dict[str, Any]
