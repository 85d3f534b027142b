from __future__ import annotations

import re
from dataclasses import dataclass, field

TRANSACTION_THRESHOLD = 0.5
ORDER_ID_BOOST = 0.3

# keyword -> (weight, category); substring match on lowercased text.
TRANSACTION_KEYWORDS: dict[str, tuple[float, str]] = {
    'order': (0.9, 'order'),
    'order id': (1.0, 'order'),
    'order number': (1.0, 'order'),
    'order status': (1.0, 'order'),
    'my order': (0.95, 'order'),
    'transaction': (0.9, 'transaction'),
    'transaction id': (1.0, 'transaction'),
    'transaction status': (1.0, 'transaction'),
    'my transaction': (0.95, 'transaction'),
    'txn': (0.8, 'transaction'),
    'payment': (0.8, 'payment'),
    'payment status': (0.9, 'payment'),
    'payment failed': (0.95, 'payment'),
    'payment pending': (0.95, 'payment'),
    'payment issue': (0.9, 'payment'),
    'unpaid': (0.7, 'payment'),
    'paid': (0.6, 'payment'),
    'transfer': (0.7, 'transfer'),
    'money transfer': (0.8, 'transfer'),
    'sent money': (0.8, 'transfer'),
    'received money': (0.8, 'transfer'),
    'status': (0.6, 'status'),
    'pending': (0.7, 'status'),
    'failed': (0.8, 'status'),
    'completed': (0.7, 'status'),
    'processing': (0.8, 'status'),
    'cancelled': (0.8, 'status'),
    'refund': (0.8, 'status'),
    'not received': (0.9, 'issue'),
    "didn't receive": (0.9, 'issue'),
    "haven't received": (0.9, 'issue'),
    'missing': (0.8, 'issue'),
    'lost': (0.7, 'issue'),
    'stuck': (0.8, 'issue'),
    'delayed': (0.8, 'issue'),
    'where is': (0.6, 'inquiry'),
    'when will': (0.6, 'inquiry'),
    'what happened': (0.7, 'inquiry'),
    "what's wrong": (0.8, 'inquiry'),
}

ORDER_ID_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ('or', re.compile(r'\bOR-\d{12,20}\b', re.IGNORECASE)),
    ('txn', re.compile(r'\bTXN-\d{10,20}\b', re.IGNORECASE)),
    ('tf', re.compile(r'\bTF-\d{10,20}\b', re.IGNORECASE)),
    (
        'generic',
        re.compile(
            r'\b(?:order|transaction)\s*(?:id|number|no\.?)?\s*[:#]?\s*'
            r'((?=[A-Z0-9-]*\d)[A-Z0-9][A-Z0-9-]{6,23}[A-Z0-9])(?![A-Z0-9-])',
            re.IGNORECASE,
        ),
    ),
    ('uuid', re.compile(r'\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b', re.IGNORECASE)),
    ('alnum', re.compile(r'\b[A-Z]{2,4}[0-9]{8,20}\b')),
]

URGENT_KEYWORDS = ('urgent', 'emergency', 'asap', 'immediately', 'stuck', 'lost', 'missing', 'failed')

INTENT_KEYWORDS: dict[str, tuple[str, ...]] = {
    'authentication': ('auth', 'login', 'api key', 'oauth', 'token'),
    'payment': ('payment', 'pay', 'transaction', 'charge', 'refund'),
    'webhook': ('webhook', 'callback', 'notification', 'event'),
    'integration': ('integrate', 'setup', 'install', 'configure'),
    'error': ('error', 'issue', 'problem', 'not working', 'failed'),
}


@dataclass
class TransactionDetection:
    is_transaction_related: bool
    confidence: float
    category: str | None
    keywords: list[str] = field(default_factory=list)
    category_scores: dict[str, float] = field(default_factory=dict)


@dataclass
class OrderAnalysis:
    is_order_related: bool
    confidence: float
    order_ids: list[str]
    category: str | None
    keywords: list[str]
    recommended_action: str
    urgency: str

    def as_dict(self) -> dict:
        return {
            'is_order_related': self.is_order_related,
            'confidence': self.confidence,
            'order_ids': list(self.order_ids),
            'category': self.category,
            'keywords': list(self.keywords),
            'recommended_action': self.recommended_action,
            'urgency': self.urgency,
        }


def detect_transaction_related(text: str) -> TransactionDetection:
    lowered = (text or '').lower().strip()
    if not lowered:
        return TransactionDetection(is_transaction_related=False, confidence=0.0, category=None)

    total = 0.0
    matched: list[str] = []
    scores: dict[str, float] = {}
    for keyword, (weight, category) in TRANSACTION_KEYWORDS.items():
        if keyword in lowered:
            total += weight
            matched.append(keyword)
            scores[category] = scores.get(category, 0.0) + weight

    primary = max(scores, key=scores.get) if scores else None
    confidence = round(min(total, 1.0), 2)
    related = confidence >= TRANSACTION_THRESHOLD
    return TransactionDetection(
        is_transaction_related=related,
        confidence=confidence,
        category=primary if related else None,
        keywords=matched,
        category_scores={k: round(v, 2) for k, v in scores.items()},
    )


def extract_order_ids(text: str) -> list[str]:
    if not text:
        return []
    found: list[str] = []
    seen: set[str] = set()
    for _, pattern in ORDER_ID_PATTERNS:
        for match in pattern.finditer(text):
            value = (match.group(1) if match.groups() else match.group(0)).strip()
            key = value.lower()
            if key in seen:
                continue
            seen.add(key)
            found.append(value)
    return found


def _recommended_action(detection: TransactionDetection, order_ids: list[str]) -> str:
    if order_ids:
        return 'escalate_with_order_id' if detection.category == 'issue' else 'lookup_order_status'
    if detection.is_transaction_related:
        return 'request_order_id' if detection.category == 'issue' else 'provide_general_transaction_help'
    return 'general_support'


def _urgency(detection: TransactionDetection, text: str) -> str:
    lowered = text.lower()
    urgent = any(k in lowered for k in URGENT_KEYWORDS)
    is_issue = detection.category == 'issue'
    if urgent and is_issue:
        return 'high'
    if is_issue and detection.confidence > 0.8:
        return 'medium'
    if detection.is_transaction_related:
        return 'low'
    return 'normal'


def analyze_order_query(text: str) -> OrderAnalysis:
    detection = detect_transaction_related(text)
    order_ids = extract_order_ids(text)
    confidence = detection.confidence
    if order_ids:
        confidence = min(confidence + ORDER_ID_BOOST, 1.0)
    return OrderAnalysis(
        is_order_related=detection.is_transaction_related or bool(order_ids),
        confidence=round(confidence, 2),
        order_ids=order_ids,
        category=detection.category,
        keywords=detection.keywords,
        recommended_action=_recommended_action(detection, order_ids),
        urgency=_urgency(detection, text or ''),
    )


def detect_intent(question: str) -> str:
    lowered = (question or '').lower()
    for intent, keywords in INTENT_KEYWORDS.items():
        if any(k in lowered for k in keywords):
            return intent
    return 'general'
