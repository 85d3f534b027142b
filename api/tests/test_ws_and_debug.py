from __future__ import annotations

import asyncio

from app.config import Settings, get_settings
from app.dependencies import get_escalation_router, get_session_registry
from app.main import app
from app.services.escalation_router import EscalationRouter
from app.services.session_registry import SessionRegistry
from tests.fakes import FakeLearner, FakePoster


def test_socket_receives_established_then_queued_replies(client) -> None:
    registry = SessionRegistry()
    app.dependency_overrides[get_session_registry] = lambda: registry
    asyncio.run(registry.send('sess-1', {'type': 'human_reply', 'message': 'while you were away'}))

    with client.websocket_connect('/ws?sessionId=sess-1') as ws:
        established = ws.receive_json()
        assert established['type'] == 'session_established'
        assert established['sessionId'] == 'sess-1'

        queued = ws.receive_json()
        assert queued['message'] == 'while you were away'
        assert queued['deliveryMode'] == 'queued_delivery'

        ws.send_json({'type': 'ping'})
        assert ws.receive_json()['type'] == 'pong'

    assert registry.pending_count('sess-1') == 0


def test_socket_without_session_gets_generated_id(client) -> None:
    app.dependency_overrides[get_session_registry] = lambda: SessionRegistry()

    with client.websocket_connect('/ws') as ws:
        established = ws.receive_json()
        assert established['sessionId']
        assert established['connectionId']


def test_debug_snapshot_lists_pending_and_threads(client) -> None:
    registry = SessionRegistry()
    router = EscalationRouter(registry=registry, poster=FakePoster(), learner=FakeLearner())
    app.dependency_overrides[get_session_registry] = lambda: registry
    app.dependency_overrides[get_escalation_router] = lambda: router
    app.dependency_overrides[get_settings] = lambda: Settings(debug_endpoints_enabled=True)
    asyncio.run(router.escalate('Question?', 'sess-2'))
    asyncio.run(registry.send('sess-2', {'type': 'human_reply', 'message': 'queued'}))

    resp = client.get('/api/debug/connections')

    assert resp.status_code == 200
    body = resp.json()
    assert body['total_pending'] == 1
    assert body['threads'][0]['session_id'] == 'sess-2'


def test_debug_routes_can_be_disabled(client) -> None:
    app.dependency_overrides[get_settings] = lambda: Settings(debug_endpoints_enabled=False)

    assert client.get('/api/debug/connections').status_code == 404
