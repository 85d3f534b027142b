from __future__ import annotations

import pytest

from app.services.confidence import (
    escalation_reason,
    estimate_confidence,
    find_hedge_phrase,
    has_fact_marker,
    should_escalate,
)


def test_short_answer_gets_no_length_or_fact_bonus_and_escalates() -> None:
    score = estimate_confidence('Maybe', ['doc'])

    assert score.length_bonus == 0.0
    assert score.fact_bonus == 0.0
    assert score.total == pytest.approx(0.6)
    assert escalation_reason('Maybe', score) == 'too_short'


def test_factual_answer_with_three_sources_is_released_unclamped() -> None:
    text = 'Yes, USD and EUR are supported.'
    score = estimate_confidence(text, ['faq', 'csv', 'doc'])

    assert score.total == pytest.approx(1.2)
    assert score.total > 0.6
    assert not should_escalate(text, score)


def test_hedge_phrase_escalates_regardless_of_score() -> None:
    text = "I don't have that information, but payouts settle in 2 days."
    score = estimate_confidence(text, ['a', 'b', 'c'])

    assert score.total > 1.0
    assert escalation_reason(text, score) == 'hedge_phrase'


def test_hedge_phrase_matching_ignores_case_and_curly_quotes() -> None:
    assert find_hedge_phrase('Sorry, I’M NOT SURE about that.') == "i'm not sure"
    assert find_hedge_phrase('We cannot provide that information here.') == 'cannot provide that information'
    assert find_hedge_phrase('Transfers settle within one business day.') is None


def test_low_confidence_without_facts_escalates() -> None:
    text = 'Please contact the relevant team about that.'
    score = estimate_confidence(text, [])

    assert score.total == pytest.approx(0.5)
    assert escalation_reason(text, score) == 'low_confidence'


def test_low_confidence_with_fact_marker_is_released() -> None:
    text = 'The monthly limit is 5000 per account.'
    score = estimate_confidence(text, [])

    assert score.total == pytest.approx(0.7)
    assert not should_escalate(text, score)


def test_empty_answer_escalates() -> None:
    score = estimate_confidence('', [])
    assert escalation_reason('   ', score) == 'empty'


@pytest.mark.parametrize(
    'text,expected',
    [
        ('Fees are 1.5%', True),
        ('Costs $10', True),
        ('No, that is prohibited', True),
        ('GBP payouts are available', True),
        ('Contact the team', False),
        ('Nothing to see', False),
    ],
)
def test_fact_markers(text: str, expected: bool) -> None:
    assert has_fact_marker(text) is expected
