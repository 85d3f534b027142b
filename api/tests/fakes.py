from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta

from app.services.cache_service import CachedAnswer
from app.services.escalation_router import ThreadCorrelation
from app.services.learning_service import LearnedMatch
from app.services.rag_service import AnswerCandidate
from app.services.slack_service import SlackApiError


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeConnection:
    def __init__(self, fail_after: int | None = None, yield_on_send: bool = False):
        self.sent: list[dict] = []
        self.closed = False
        self.fail_after = fail_after
        self.yield_on_send = yield_on_send
        self.close_calls = 0

    async def send_json(self, payload: dict) -> None:
        if self.yield_on_send:
            await asyncio.sleep(0)
        if self.closed:
            raise RuntimeError('connection closed')
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise RuntimeError('socket write failed')
        self.sent.append(payload)

    async def close(self) -> None:
        self.closed = True
        self.close_calls += 1

    def of_type(self, message_type: str) -> list[dict]:
        return [m for m in self.sent if m.get('type') == message_type]


class FakePoster:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.posts: list[tuple[str, str, dict | None]] = []

    async def post_escalation(self, question: str, session_id: str, user_context: dict | None = None) -> str:
        if self.fail:
            raise SlackApiError('channel_not_found')
        self.posts.append((question, session_id, user_context))
        return f'1700000000.{len(self.posts):06d}'


class FakeLearner:
    def __init__(self, fail: bool = False, delays: list[float] | None = None):
        self.fail = fail
        self.delays = list(delays or [])
        self.learned: list[tuple[str, str, str | None]] = []

    async def learn(self, question: str, answer: str, answered_by: str | None = None, thread_ts: str | None = None) -> None:
        if self.delays:
            await asyncio.sleep(self.delays.pop(0))
        if self.fail:
            raise RuntimeError('database unavailable')
        self.learned.append((question, answer, answered_by))


class FakeRepository:
    def __init__(self, rows: dict[str, ThreadCorrelation] | None = None):
        self.rows = dict(rows or {})
        self.created: list[tuple[ThreadCorrelation, str, str]] = []
        self.replies: list[tuple[str, str, str | None]] = []

    async def create(self, correlation: ThreadCorrelation, reason: str, priority: str, user_context: dict) -> None:
        self.created.append((correlation, reason, priority))
        self.rows[correlation.thread_id] = correlation

    async def find(self, thread_id: str) -> ThreadCorrelation | None:
        return self.rows.get(thread_id)

    async def record_reply(self, thread_id: str, answer: str, answered_by: str | None, answered_at: datetime) -> None:
        self.replies.append((thread_id, answer, answered_by))


class FakeLearningStore:
    def __init__(self, exact: dict[str, str] | None = None, nearest: tuple[str, float] | None = None):
        self.exact = {q: LearnedMatch(id=uuid.uuid4(), question=q, answer=a, confidence=1.0) for q, a in (exact or {}).items()}
        self.nearest = nearest
        self.used: list[uuid.UUID] = []
        self.nearest_calls = 0

    async def find_exact(self, question: str) -> LearnedMatch | None:
        return self.exact.get(question)

    async def find_nearest(self, vector: list[float]) -> LearnedMatch | None:
        self.nearest_calls += 1
        if self.nearest is None:
            return None
        answer, similarity = self.nearest
        return LearnedMatch(id=uuid.uuid4(), question='similar question', answer=answer, confidence=1.0, similarity=similarity)

    async def record_usage(self, entry_id: uuid.UUID) -> None:
        self.used.append(entry_id)


class FakeCache:
    def __init__(self, entry: tuple[str, float] | None = None):
        self.entry = None
        if entry is not None:
            answer, confidence = entry
            self.entry = CachedAnswer(id=uuid.uuid4(), question='q', answer=answer, confidence=confidence)
        self.used: list[uuid.UUID] = []
        self.saved: list[tuple[str, str, list[dict], float]] = []

    async def find(self, question: str) -> CachedAnswer | None:
        return self.entry

    async def record_usage(self, entry_id: uuid.UUID) -> None:
        self.used.append(entry_id)

    async def save(self, question: str, answer: str, sources: list[dict], confidence: float) -> CachedAnswer:
        self.saved.append((question, answer, sources, confidence))
        return CachedAnswer(id=uuid.uuid4(), question=question, answer=answer, confidence=min(confidence, 1.0))


class FakeGenerator:
    def __init__(self, candidate: AnswerCandidate | None = None, delay: float = 0.0, error: Exception | None = None):
        self.candidate = candidate or AnswerCandidate(text='')
        self.delay = delay
        self.error = error
        self.calls: list[tuple[str, list[dict] | None]] = []

    async def generate(self, question: str, order_context: list[dict] | None = None) -> AnswerCandidate:
        self.calls.append((question, order_context))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.candidate


class FakeEscalator:
    def __init__(self, thread_ts: str | None = '1700000000.000100'):
        self.thread_ts = thread_ts
        self.calls: list[tuple[str, str, dict | None, str]] = []

    async def escalate(self, question: str, session_id: str, user_context: dict | None = None, reason: str = 'low_confidence') -> str | None:
        self.calls.append((question, session_id, user_context, reason))
        return self.thread_ts


class FakeOrders:
    def __init__(self, orders: list[dict] | None = None):
        self.orders = orders or []
        self.lookups: list[list[str]] = []

    async def find(self, order_ids: list[str]) -> list[dict]:
        self.lookups.append(order_ids)
        return self.orders


async def fake_embedder(text: str) -> list[float] | None:
    return [1.0, 0.0, 0.0]
