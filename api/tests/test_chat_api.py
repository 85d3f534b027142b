from __future__ import annotations

import uuid

import pytest

from app.db.models import MessageRole, SessionStatus
from app.dependencies import get_answer_arbiter, get_message_log, get_session_store
from app.main import app
from app.services.answer_arbiter import ESCALATION_MESSAGE, ArbiterOutcome


class _DummyArbiter:
    def __init__(self, outcome: ArbiterOutcome):
        self.outcome = outcome
        self.calls: list[tuple[str, str, dict | None]] = []

    async def answer(self, question: str, session_id: str, user_context: dict | None = None) -> ArbiterOutcome:
        self.calls.append((question, session_id, user_context))
        return self.outcome


class _DummySessions:
    def __init__(self, status: SessionStatus = SessionStatus.active, fail: bool = False):
        self.status = status
        self.fail = fail
        self.touched: list[str] = []

    async def touch(self, session_id: str, ip_address: str | None, user_agent: str | None) -> SessionStatus:
        if self.fail:
            raise RuntimeError('database unavailable')
        self.touched.append(session_id)
        return self.status


class _DummyMessages:
    def __init__(self):
        self.entries: list[tuple[str, MessageRole, str]] = []

    async def append(self, session_id: str, role: MessageRole, content: str, metadata: dict | None = None) -> None:
        self.entries.append((session_id, role, content))


GENERATED = ArbiterOutcome(
    answer='Payouts settle in 2 business days.',
    source_type='generated',
    sources=[{'content': 'Payouts settle...', 'source': 'FAQ', 'type': 'faq'}],
    confidence=1.0,
)


@pytest.fixture
def arbiter():
    dummy = _DummyArbiter(GENERATED)
    app.dependency_overrides[get_answer_arbiter] = lambda: dummy
    return dummy


@pytest.fixture
def sessions():
    dummy = _DummySessions()
    app.dependency_overrides[get_session_store] = lambda: dummy
    return dummy


@pytest.fixture
def messages():
    dummy = _DummyMessages()
    app.dependency_overrides[get_message_log] = lambda: dummy
    return dummy


def test_missing_question_is_rejected_before_pipeline(client, arbiter, sessions, messages) -> None:
    resp = client.post('/api/chat', json={})
    assert resp.status_code == 400

    resp = client.post('/api/chat', json={'question': '   '})
    assert resp.status_code == 400

    assert arbiter.calls == []
    assert sessions.touched == []


def test_session_token_is_generated_when_absent(client, arbiter, sessions, messages) -> None:
    resp = client.post('/api/chat', json={'question': 'How long do payouts take?'})

    assert resp.status_code == 200
    token = resp.headers['X-Session-Id']
    assert str(uuid.UUID(token)) == token
    body = resp.json()
    assert body['session_id'] == token
    assert body['answer'] == GENERATED.answer
    assert body['sources'][0]['type'] == 'faq'
    assert body['type'] == 'generated'
    assert 'timestamp' in body
    assert arbiter.calls[0][:2] == ('How long do payouts take?', token)


def test_existing_session_token_is_reused(client, arbiter, sessions, messages) -> None:
    resp = client.post('/api/chat', json={'question': 'Hi there?'}, headers={'X-Session-Id': 'abc-123'})

    assert resp.status_code == 200
    assert resp.json()['session_id'] == 'abc-123'
    assert 'X-Session-Id' not in resp.headers
    assert sessions.touched == ['abc-123']

    resp = client.post('/api/chat?sessionId=from-query', json={'question': 'Hi again?'})
    assert resp.json()['session_id'] == 'from-query'


def test_user_and_bot_messages_are_logged(client, arbiter, sessions, messages) -> None:
    client.post('/api/chat', json={'question': 'Hello?'}, headers={'X-Session-Id': 's1'})

    assert [(sid, role) for sid, role, _ in messages.entries] == [('s1', MessageRole.user), ('s1', MessageRole.bot)]


def test_banned_session_is_refused(client, arbiter, messages) -> None:
    app.dependency_overrides[get_session_store] = lambda: _DummySessions(status=SessionStatus.banned)

    resp = client.post('/api/chat', json={'question': 'Hello?'}, headers={'X-Session-Id': 's1'})

    assert resp.status_code == 403
    assert arbiter.calls == []


def test_session_store_outage_does_not_block_answer(client, arbiter, messages) -> None:
    app.dependency_overrides[get_session_store] = lambda: _DummySessions(fail=True)

    resp = client.post('/api/chat', json={'question': 'Hello?'}, headers={'X-Session-Id': 's1'})

    assert resp.status_code == 200
    assert len(arbiter.calls) == 1


def test_escalation_payload(client, sessions, messages) -> None:
    outcome = ArbiterOutcome(
        answer=ESCALATION_MESSAGE,
        source_type='escalation',
        escalation=True,
        thread_ts='1700000000.000100',
        reason='low_confidence',
    )
    app.dependency_overrides[get_answer_arbiter] = lambda: _DummyArbiter(outcome)

    resp = client.post('/api/chat', json={'question': 'Odd question?'}, headers={'X-Session-Id': 's1'})

    body = resp.json()
    assert resp.status_code == 200
    assert body['escalation'] is True
    assert body['thread_ts'] == '1700000000.000100'
    assert body['answer'] == ESCALATION_MESSAGE


def test_non_string_question_fails_validation(client, arbiter, sessions, messages) -> None:
    resp = client.post('/api/chat', json={'question': 123})

    assert resp.status_code == 422
    assert arbiter.calls == []
