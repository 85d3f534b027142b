from __future__ import annotations

import hashlib
import hmac
import json

import httpx
import pytest

from app.config import Settings
from app.services.slack_service import SlackApiError, SlackClient, build_escalation_blocks, verify_signature

SECRET = 'signing-secret'
NOW = 1_700_000_000


def _sign(body: bytes, timestamp: int = NOW) -> str:
    return 'v0=' + hmac.new(SECRET.encode(), f'v0:{timestamp}:'.encode() + body, hashlib.sha256).hexdigest()


def test_verify_signature_accepts_valid_request() -> None:
    body = b'{"type":"event_callback"}'
    assert verify_signature(SECRET, str(NOW), body, _sign(body), now=NOW + 10)


def test_verify_signature_rejects_tampering_and_replay() -> None:
    body = b'{"type":"event_callback"}'
    assert not verify_signature(SECRET, str(NOW), body + b' ', _sign(body), now=NOW)
    assert not verify_signature(SECRET, str(NOW), body, _sign(body), now=NOW + 301)
    assert not verify_signature(SECRET, 'not-a-number', body, _sign(body), now=NOW)
    assert not verify_signature(SECRET, str(NOW), body, '', now=NOW)


def test_escalation_blocks_include_context_fields() -> None:
    blocks = build_escalation_blocks(
        'Where is my order?',
        's1',
        {'priority': 'urgent', 'order_ids': ['OR-123456789012'], 'user_agent': 'pytest'},
    )

    assert blocks[0]['text']['text'] == 'AI Escalation Required'
    field_text = ' '.join(f['text'] for f in blocks[2]['fields'])
    assert '`s1`' in field_text
    assert 'urgent' in field_text
    assert 'OR-123456789012' in field_text
    assert blocks[-1]['elements'][0]['text'] == 'Please reply in this thread.'


def _client(handler, **overrides) -> SlackClient:
    settings = Settings(slack_bot_token='xoxb-test', slack_channel_id='C123', **overrides)
    return SlackClient(settings, http=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_post_escalation_returns_thread_ts() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={'ok': True, 'ts': '1700000000.000100'})

    client = _client(handler)
    ts = await client.post_escalation('How do refunds work?', 's1', {'priority': 'medium'})
    await client.aclose()

    assert ts == '1700000000.000100'
    assert seen[0].url.path.endswith('/chat.postMessage')
    assert seen[0].headers['Authorization'] == 'Bearer xoxb-test'
    payload = json.loads(seen[0].content)
    assert payload['channel'] == 'C123'
    assert 'How do refunds work?' in payload['text']


@pytest.mark.asyncio
async def test_post_escalation_raises_on_slack_error() -> None:
    client = _client(lambda request: httpx.Response(200, json={'ok': False, 'error': 'channel_not_found'}))

    with pytest.raises(SlackApiError, match='channel_not_found'):
        await client.post_escalation('Question?', 's1')
    await client.aclose()


@pytest.mark.asyncio
async def test_post_escalation_raises_on_http_failure() -> None:
    client = _client(lambda request: httpx.Response(500, text='boom'))

    with pytest.raises(SlackApiError):
        await client.post_escalation('Question?', 's1')
    await client.aclose()


@pytest.mark.asyncio
async def test_unconfigured_client_refuses_to_post() -> None:
    client = SlackClient(Settings(slack_bot_token=None, slack_channel_id=None))

    assert client.configured is False
    with pytest.raises(SlackApiError):
        await client.post_escalation('Question?', 's1')
    await client.aclose()
