from __future__ import annotations

import uuid

import pytest

from app.db.models import LearnedAnswer
from app.services.cache_service import cache_key
from app.services.document_service import infer_source_type, split_by_heading
from app.services.embedding_service import _fit_dim, cosine_similarity
from app.services.learning_service import render_markdown
from app.services.rag_service import to_fragment
from app.services.retrieval_service import RetrievedChunk


def test_split_by_heading_tracks_heading_path() -> None:
    text = '# Payouts\nintro\n## Timing\nTwo business days.\n# Fees\nFlat 1%.'

    assert split_by_heading(text) == [
        ('Payouts', 'intro'),
        ('Payouts > Timing', 'Two business days.'),
        ('Fees', 'Flat 1%.'),
    ]


def test_split_by_heading_caps_chunk_size() -> None:
    text = '\n'.join(['x' * 50] * 10)

    chunks = split_by_heading(text, max_chars=100)

    assert len(chunks) == 5
    assert all(heading is None for heading, _ in chunks)


@pytest.mark.parametrize(
    ('source', 'expected'),
    [
        ('payments_FAQ.pdf', 'faq'),
        ('countries.csv', 'csv'),
        ('rates.XLSX', 'xlsx'),
        ('guide.md', 'documentation'),
    ],
)
def test_infer_source_type(source: str, expected: str) -> None:
    assert infer_source_type(source) == expected


def test_cosine_similarity() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [1.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_fit_dim_folds_longer_vectors() -> None:
    assert _fit_dim([1.0, 2.0, 3.0, 4.0], 2) == [2.0, 3.0]
    assert _fit_dim([], 3) == [0.0, 0.0, 0.0]


def test_cache_key_ignores_case_and_spacing() -> None:
    assert cache_key('How do  refunds work?') == cache_key('  how do refunds WORK? ')
    assert cache_key('How do refunds work?') != cache_key('How do refunds work')


def test_render_markdown_lists_pairs() -> None:
    pairs = [LearnedAnswer(question='How do refunds work? ', answer=' Five days. ')]

    assert render_markdown(pairs) == '# Human-Learned Q&A\n\n## How do refunds work?\n\nFive days.\n'


def test_to_fragment_truncates_long_chunks() -> None:
    chunk = RetrievedChunk(
        chunk_id=uuid.uuid4(),
        document_id=uuid.uuid4(),
        title='Guide',
        source='guide.md',
        source_type='documentation',
        heading_path=None,
        text='a' * 250,
        score=0.9,
    )

    fragment = to_fragment(chunk)

    assert fragment.content == 'a' * 200 + '...'
    assert fragment.source == 'Guide'
    assert fragment.type == 'documentation'
