from __future__ import annotations

import hashlib
import hmac
import logging
import time

import httpx

from app.config import Settings

logger = logging.getLogger(__name__)

SIGNATURE_MAX_AGE_SECONDS = 60 * 5


class SlackApiError(RuntimeError):
    pass


def verify_signature(signing_secret: str, timestamp: str, body: bytes, signature: str, now: float | None = None) -> bool:
    try:
        ts = int(timestamp)
    except (TypeError, ValueError):
        return False
    current = time.time() if now is None else now
    if abs(current - ts) > SIGNATURE_MAX_AGE_SECONDS:
        return False
    base = b'v0:' + str(ts).encode('utf-8') + b':' + body
    expected = 'v0=' + hmac.new(signing_secret.encode('utf-8'), base, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature or '')


def build_escalation_blocks(question: str, session_id: str, user_context: dict | None = None) -> list[dict]:
    blocks: list[dict] = [
        {'type': 'header', 'text': {'type': 'plain_text', 'text': 'AI Escalation Required'}},
        {'type': 'section', 'text': {'type': 'mrkdwn', 'text': f'*User asked:*\n>{question}'}},
    ]
    context = user_context or {}
    fields = [{'type': 'mrkdwn', 'text': f'*Session:*\n`{session_id}`'}]
    for label, key in (
        ('Priority', 'priority'),
        ('Reason', 'reason'),
        ('Urgency', 'urgency'),
        ('Intent', 'intent'),
    ):
        if context.get(key):
            fields.append({'type': 'mrkdwn', 'text': f'*{label}:*\n{context[key]}'})
    if context.get('order_ids'):
        fields.append({'type': 'mrkdwn', 'text': '*Order IDs:*\n' + ', '.join(context['order_ids'])})
    blocks.append({'type': 'section', 'fields': fields[:10]})
    if context.get('user_agent'):
        blocks.append(
            {'type': 'context', 'elements': [{'type': 'plain_text', 'text': str(context['user_agent'])[:150]}]}
        )
    blocks.append(
        {'type': 'context', 'elements': [{'type': 'mrkdwn', 'text': 'Please reply in this thread.'}]}
    )
    return blocks


class SlackClient:
    def __init__(self, settings: Settings, http: httpx.AsyncClient | None = None):
        self.token = settings.slack_bot_token
        self.channel_id = settings.slack_channel_id
        self.base_url = settings.slack_api_base_url.rstrip('/')
        self.http = http or httpx.AsyncClient(timeout=10)

    @property
    def configured(self) -> bool:
        return bool(self.token and self.channel_id)

    async def _call(self, method: str, payload: dict) -> dict:
        try:
            resp = await self.http.post(
                f'{self.base_url}/{method}',
                json=payload,
                headers={'Authorization': f'Bearer {self.token}'},
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SlackApiError(f'{method} failed: {exc}') from exc
        if not data.get('ok'):
            raise SlackApiError(f"{method} failed: {data.get('error', 'unknown_error')}")
        return data

    async def post_escalation(self, question: str, session_id: str, user_context: dict | None = None) -> str:
        """Post a new escalation to the support channel and return its thread ts."""
        if not self.configured:
            raise SlackApiError('slack bot token or channel id not configured')
        data = await self._call(
            'chat.postMessage',
            {
                'channel': self.channel_id,
                'text': f'AI Escalation Required! User asked: "{question}". Please reply in this thread.',
                'blocks': build_escalation_blocks(question, session_id, user_context),
                'unfurl_links': False,
            },
        )
        ts = data.get('ts')
        if not ts:
            raise SlackApiError('chat.postMessage returned no ts')
        return str(ts)

    async def aclose(self) -> None:
        await self.http.aclose()
