from __future__ import annotations

import hashlib
import logging
import math
from collections import deque

import httpx

from app.config import get_settings
from app.db.models import EMBED_DIM

logger = logging.getLogger(__name__)

_embed_cache: dict[str, list[float]] = {}
_embed_order: deque[str] = deque()
_EMBED_CACHE_MAX = 1024


def _normalize(vec: list[float]) -> list[float]:
    norm = math.sqrt(sum(v * v for v in vec))
    if norm <= 1e-12:
        return vec
    return [v / norm for v in vec]


def _fit_dim(vec: list[float], target_dim: int) -> list[float]:
    if not vec:
        return [0.0] * target_dim
    if len(vec) == target_dim:
        return vec
    out = [0.0] * target_dim
    for i, v in enumerate(vec):
        out[i % target_dim] += float(v)
    scale = max(1, len(vec) // target_dim)
    return [v / scale for v in out]


def _cache_set(key: str, value: list[float]) -> None:
    if key in _embed_cache:
        _embed_cache[key] = value
        return
    _embed_cache[key] = value
    _embed_order.append(key)
    while len(_embed_order) > _EMBED_CACHE_MAX:
        old = _embed_order.popleft()
        _embed_cache.pop(old, None)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a <= 1e-12 or norm_b <= 1e-12:
        return 0.0
    return dot / (norm_a * norm_b)


def embeddings_enabled() -> bool:
    return bool(get_settings().ollama_embed_model.strip())


async def embed_text(text: str) -> list[float] | None:
    """Embed text with the configured Ollama model; None when disabled or unavailable."""
    if not embeddings_enabled():
        return None
    key = hashlib.sha256(text.encode('utf-8')).hexdigest()
    cached = _embed_cache.get(key)
    if cached is not None:
        return cached

    settings = get_settings()
    base_url = settings.ollama_base_url.rstrip('/')
    timeout = max(5, int(settings.ollama_timeout_seconds))
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(
                f'{base_url}/api/embeddings',
                json={'model': settings.ollama_embed_model, 'prompt': text[:8000]},
            )
            resp.raise_for_status()
            raw_vec = resp.json().get('embedding') or []
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning('embedding request failed', extra={'event': 'embedding_failed', 'error': str(exc)})
        return None

    vec = _normalize(_fit_dim([float(v) for v in raw_vec], EMBED_DIM))
    if not any(abs(v) > 1e-12 for v in vec):
        return None
    _cache_set(key, vec)
    return vec
