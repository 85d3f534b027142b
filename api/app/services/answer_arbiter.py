from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from app.services.cache_service import CachedAnswer
from app.services.confidence import escalation_reason, estimate_confidence
from app.services.learning_service import LearnedMatch
from app.services.order_detection import OrderAnalysis, analyze_order_query, detect_intent
from app.services.rag_service import AnswerCandidate, SourceFragment

logger = logging.getLogger(__name__)

SEMANTIC_MATCH_THRESHOLD = 0.82
CACHE_MIN_CONFIDENCE = 0.8

ESCALATION_MESSAGE = "AI couldn't answer. A human assistant will reply shortly."
UNREACHABLE_MESSAGE = (
    "AI couldn't answer and the support team could not be reached right now. Please try again shortly."
)
FALLBACK_QUESTION = 'Unknown Question'

SOURCE_TYPE_ORDER = {'faq': 1, 'csv': 2, 'xlsx': 3, 'documentation': 4}
HUMAN_SOURCE = SourceFragment(content='Answer provided by the support team.', source='Support team', type='human_learned')


@dataclass
class ArbiterOutcome:
    answer: str
    source_type: str
    sources: list[dict] = field(default_factory=list)
    confidence: float | None = None
    escalation: bool = False
    thread_ts: str | None = None
    reason: str | None = None
    order_analysis: dict | None = None


class LearnedAnswers(Protocol):
    async def find_exact(self, question: str) -> LearnedMatch | None: ...

    async def find_nearest(self, vector: list[float]) -> LearnedMatch | None: ...

    async def record_usage(self, entry_id: uuid.UUID) -> None: ...


class CachedAnswers(Protocol):
    async def find(self, question: str) -> CachedAnswer | None: ...

    async def record_usage(self, entry_id: uuid.UUID) -> None: ...

    async def save(self, question: str, answer: str, sources: list[dict], confidence: float) -> CachedAnswer: ...


class Generator(Protocol):
    async def generate(self, question: str, order_context: list[dict] | None = None) -> AnswerCandidate: ...


class Escalator(Protocol):
    async def escalate(
        self, question: str, session_id: str, user_context: dict | None = None, reason: str = 'low_confidence'
    ) -> str | None: ...


class OrderFinder(Protocol):
    async def find(self, order_ids: list[str]) -> list[dict]: ...


Embedder = Callable[[str], Awaitable[list[float] | None]]
UsageRecorder = Callable[[uuid.UUID], Awaitable[None]]


def rank_sources(sources: list[SourceFragment]) -> list[SourceFragment]:
    return sorted(sources, key=lambda s: SOURCE_TYPE_ORDER.get(s.type, 5))


async def _record_usage(recorder: UsageRecorder, entry_id: uuid.UUID) -> None:
    try:
        await recorder(entry_id)
    except Exception as exc:
        logger.warning('usage update failed', extra={'event': 'usage_update_failed', 'entry_id': str(entry_id), 'error': str(exc)})


class LearnedExactStrategy:
    name = 'learned_exact'

    def __init__(self, learning: LearnedAnswers):
        self.learning = learning

    async def resolve(self, question: str) -> ArbiterOutcome | None:
        match = await self.learning.find_exact(question)
        if match is None:
            return None
        await _record_usage(self.learning.record_usage, match.id)
        return ArbiterOutcome(
            answer=match.answer,
            source_type='human_learned',
            sources=[HUMAN_SOURCE.as_dict()],
            confidence=match.confidence,
        )


class LearnedSemanticStrategy:
    name = 'learned_semantic'

    def __init__(self, learning: LearnedAnswers, embedder: Embedder, threshold: float = SEMANTIC_MATCH_THRESHOLD):
        self.learning = learning
        self.embedder = embedder
        self.threshold = threshold

    async def resolve(self, question: str) -> ArbiterOutcome | None:
        vector = await self.embedder(question)
        if vector is None:
            return None
        match = await self.learning.find_nearest(vector)
        if match is None or match.similarity < self.threshold:
            return None
        await _record_usage(self.learning.record_usage, match.id)
        logger.info(
            'semantic learned match',
            extra={'event': 'learned_semantic_hit', 'entry_id': str(match.id), 'similarity': round(match.similarity, 4)},
        )
        return ArbiterOutcome(
            answer=match.answer,
            source_type='human_learned',
            sources=[HUMAN_SOURCE.as_dict()],
            confidence=match.confidence,
        )


class CacheStrategy:
    name = 'cache'

    def __init__(self, cache: CachedAnswers, min_confidence: float = CACHE_MIN_CONFIDENCE):
        self.cache = cache
        self.min_confidence = min_confidence

    async def resolve(self, question: str) -> ArbiterOutcome | None:
        entry = await self.cache.find(question)
        if entry is None or not entry.confidence > self.min_confidence:
            return None
        await _record_usage(self.cache.record_usage, entry.id)
        return ArbiterOutcome(
            answer=entry.answer,
            source_type='cached',
            sources=list(entry.sources),
            confidence=entry.confidence,
        )


class AnswerArbiter:
    def __init__(
        self,
        learning: LearnedAnswers,
        cache: CachedAnswers,
        generator: Generator,
        escalator: Escalator,
        embedder: Embedder | None = None,
        orders: OrderFinder | None = None,
        generation_timeout: float = 45.0,
    ):
        self.cache = cache
        self.generator = generator
        self.escalator = escalator
        self.orders = orders
        self.generation_timeout = generation_timeout
        self.strategies = [LearnedExactStrategy(learning)]
        if embedder is not None:
            self.strategies.append(LearnedSemanticStrategy(learning, embedder))
        self.strategies.append(CacheStrategy(cache))

    async def answer(self, question: str, session_id: str, user_context: dict | None = None) -> ArbiterOutcome:
        question = (question or '').strip()
        context = dict(user_context or {})
        try:
            if not question:
                raise ValueError('empty question')
            for strategy in self.strategies:
                outcome = await strategy.resolve(question)
                if outcome is not None:
                    logger.info(
                        'answered from store',
                        extra={'event': 'answer_served', 'strategy': strategy.name, 'session_id': session_id},
                    )
                    return outcome
            return await self._generate(question, session_id, context)
        except Exception:
            logger.exception('answer pipeline failed; escalating', extra={'event': 'pipeline_failed', 'session_id': session_id})
            return await self._escalate(question or FALLBACK_QUESTION, session_id, context, reason='error')

    async def _order_context(self, analysis: OrderAnalysis) -> list[dict] | None:
        if not analysis.order_ids or self.orders is None:
            return None
        try:
            return await self.orders.find(analysis.order_ids) or None
        except Exception as exc:
            logger.warning('order lookup failed', extra={'event': 'order_lookup_failed', 'error': str(exc)})
            return None

    async def _generate(self, question: str, session_id: str, context: dict) -> ArbiterOutcome:
        analysis = analyze_order_query(question)
        if analysis.is_order_related:
            context.update(
                order_ids=analysis.order_ids,
                urgency=analysis.urgency,
                recommended_action=analysis.recommended_action,
            )
        context.setdefault('intent', detect_intent(question))
        order_context = await self._order_context(analysis)

        candidate = await asyncio.wait_for(
            self.generator.generate(question, order_context=order_context),
            timeout=self.generation_timeout,
        )
        score = estimate_confidence(candidate.text, candidate.sources)
        reason = escalation_reason(candidate.text, score)
        if reason is not None:
            logger.info(
                'candidate rejected',
                extra={'event': 'candidate_rejected', 'session_id': session_id, 'reason': reason, 'confidence': score.total},
            )
            outcome = await self._escalate(question, session_id, context, reason=reason)
            outcome.confidence = score.total
            outcome.order_analysis = analysis.as_dict()
            return outcome

        sources = [s.as_dict() for s in rank_sources(candidate.sources)]
        if not analysis.is_order_related:
            try:
                await self.cache.save(question, candidate.text, sources, score.total)
            except Exception as exc:
                logger.warning('cache write failed', extra={'event': 'cache_write_failed', 'error': str(exc)})
        return ArbiterOutcome(
            answer=candidate.text,
            source_type='generated',
            sources=sources,
            confidence=score.total,
            order_analysis=analysis.as_dict(),
        )

    async def _escalate(self, question: str, session_id: str, context: dict, reason: str) -> ArbiterOutcome:
        try:
            thread_ts = await self.escalator.escalate(question, session_id, context, reason=reason)
        except Exception:
            logger.exception('escalation failed', extra={'event': 'escalation_failed', 'session_id': session_id})
            thread_ts = None
        return ArbiterOutcome(
            answer=ESCALATION_MESSAGE if thread_ts else UNREACHABLE_MESSAGE,
            source_type='escalation',
            escalation=True,
            thread_ts=thread_ts,
            reason=reason,
        )
