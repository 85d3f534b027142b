from __future__ import annotations

from app.services.order_detection import (
    analyze_order_query,
    detect_intent,
    detect_transaction_related,
    extract_order_ids,
)


def test_extracts_known_order_id_formats() -> None:
    text = 'My transfers OR-123456789012 and TXN-9876543210 plus tf-1234567890 are missing'
    assert extract_order_ids(text) == ['OR-123456789012', 'TXN-9876543210', 'tf-1234567890']


def test_extracts_uuid_and_prefixed_ids_without_duplicates() -> None:
    text = 'Order id 3f2b8c1e-1a2b-4c3d-8e9f-0a1b2c3d4e5f, also ABC12345678 and abc12345678 again ABC12345678'
    ids = extract_order_ids(text)
    assert '3f2b8c1e-1a2b-4c3d-8e9f-0a1b2c3d4e5f' in ids
    assert ids.count('ABC12345678') == 1


def test_generic_order_reference_needs_a_digit() -> None:
    assert extract_order_ids('my order processing is slow') == []
    assert extract_order_ids('order number 55501234') == ['55501234']


def test_detects_transaction_questions() -> None:
    detection = detect_transaction_related('My payment failed and the money is stuck')
    assert detection.is_transaction_related
    assert detection.confidence == 1.0
    assert detection.category in {'payment', 'status', 'issue'}

    assert not detect_transaction_related('What are your opening hours?').is_transaction_related


def test_issue_with_order_id_recommends_escalation() -> None:
    analysis = analyze_order_query('I have not received OR-123456789012, it is missing')
    assert analysis.is_order_related
    assert analysis.order_ids == ['OR-123456789012']
    assert analysis.category == 'issue'
    assert analysis.recommended_action == 'escalate_with_order_id'
    assert analysis.urgency == 'high'


def test_order_id_without_issue_recommends_lookup() -> None:
    analysis = analyze_order_query('What is the status of TXN-1234567890?')
    assert analysis.recommended_action == 'lookup_order_status'
    assert analysis.confidence == 1.0


def test_general_question_is_not_order_related() -> None:
    analysis = analyze_order_query('Which countries do you support?')
    assert not analysis.is_order_related
    assert analysis.recommended_action == 'general_support'
    assert analysis.urgency == 'normal'


def test_detect_intent() -> None:
    assert detect_intent('How do I rotate my API key?') == 'authentication'
    assert detect_intent('Webhook callbacks are not arriving') == 'webhook'
    assert detect_intent('Tell me about your company') == 'general'
