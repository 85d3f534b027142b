from __future__ import annotations

from functools import lru_cache

from redis.asyncio import Redis

from app.config import get_settings
from app.db.session import get_session_factory
from app.services.answer_arbiter import AnswerArbiter
from app.services.cache_service import AnswerCache
from app.services.embedding_service import embed_text, embeddings_enabled
from app.services.escalation_router import EscalationRepository, EscalationRouter
from app.services.learning_service import LearningStore
from app.services.message_log import MessageLog
from app.services.order_service import OrderLookup
from app.services.rag_service import RagPipeline
from app.services.session_registry import SessionRegistry
from app.services.session_service import SessionStore
from app.services.slack_service import SlackClient


@lru_cache
def get_redis() -> Redis:
    return Redis.from_url(get_settings().redis_url, decode_responses=True)


@lru_cache
def get_session_registry() -> SessionRegistry:
    return SessionRegistry()


@lru_cache
def get_slack_client() -> SlackClient:
    return SlackClient(get_settings())


@lru_cache
def get_learning_store() -> LearningStore:
    return LearningStore(get_session_factory())


@lru_cache
def get_answer_cache() -> AnswerCache:
    return AnswerCache(get_redis(), get_session_factory(), get_settings().cache_ttl_seconds)


@lru_cache
def get_session_store() -> SessionStore:
    return SessionStore(get_session_factory())


@lru_cache
def get_message_log() -> MessageLog:
    return MessageLog(get_session_factory())


@lru_cache
def get_escalation_router() -> EscalationRouter:
    return EscalationRouter(
        registry=get_session_registry(),
        poster=get_slack_client(),
        learner=get_learning_store(),
        repository=EscalationRepository(get_session_factory()),
    )


@lru_cache
def get_answer_arbiter() -> AnswerArbiter:
    settings = get_settings()
    return AnswerArbiter(
        learning=get_learning_store(),
        cache=get_answer_cache(),
        generator=RagPipeline(get_session_factory()),
        escalator=get_escalation_router(),
        embedder=embed_text if embeddings_enabled() else None,
        orders=OrderLookup(get_session_factory()),
        generation_timeout=settings.generation_timeout_seconds,
    )
