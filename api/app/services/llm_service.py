from __future__ import annotations

import json
import logging
from dataclasses import dataclass

import httpx

from app.config import get_settings
from app.services.retrieval_service import RetrievedChunk

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    'You are a customer support assistant. Answer only from the provided context and order details. '
    'Reply in the same language the customer used. Be concise and factual. '
    "If the context does not contain the answer, say exactly: I don't have that information."
)


class GenerationError(RuntimeError):
    pass


@dataclass
class LlmAnswer:
    answer: str
    used_chunks: list[RetrievedChunk]


def _build_context(chunks: list[RetrievedChunk]) -> list[dict]:
    return [
        {
            'source': c.source,
            'source_type': c.source_type,
            'title': c.title,
            'heading_path': c.heading_path,
            'text': c.text[:900],
        }
        for c in chunks
    ]


async def generate_answer(
    question: str,
    chunks: list[RetrievedChunk],
    order_context: list[dict] | None = None,
) -> LlmAnswer:
    settings = get_settings()
    user_payload = {
        'question': question,
        'context': _build_context(chunks),
        'instructions': [
            'Answer with a direct lead sentence and at most 4 short bullets.',
            'Quote amounts, currencies, limits and statuses exactly as they appear in the context.',
            'Do not invent policies, prices or order states.',
        ],
        'output_schema': {'answer': 'string'},
    }
    if order_context:
        user_payload['order_details'] = order_context
        user_payload['instructions'].append(
            'The customer referenced the orders in order_details; use their status, amounts and errors in the answer.'
        )

    body = {
        'model': settings.ollama_model,
        'stream': False,
        'format': 'json',
        'messages': [
            {'role': 'system', 'content': SYSTEM_PROMPT},
            {'role': 'user', 'content': json.dumps(user_payload, default=str)},
        ],
        'options': {'temperature': 0},
    }

    try:
        async with httpx.AsyncClient(timeout=settings.ollama_timeout_seconds) as client:
            resp = await client.post(f"{settings.ollama_base_url.rstrip('/')}/api/chat", json=body)
            resp.raise_for_status()
            data = resp.json()
        content = data.get('message', {}).get('content', '{}')
        parsed = json.loads(content)
    except (httpx.HTTPError, ValueError) as exc:
        raise GenerationError(f'generation failed: {exc}') from exc

    answer = str(parsed.get('answer', '') if isinstance(parsed, dict) else '').strip()
    return LlmAnswer(answer=answer, used_chunks=chunks)
