"""
Bank Correspondence Hub - Correspondence Classifier

Deterministic keyword classification of incoming bank correspondence.

Key principles:
1. Pure function: no I/O, no state, never fails
2. Case-insensitive substring matching over "subject + body"
3. Rules are evaluated in a fixed order, first match wins
4. Large amounts (millions/billions) escalate MEDIUM/HIGH to HIGH, never touch URGENT
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Tuple

from .hub_models import Category, Priority


# Category rules in evaluation order
CATEGORY_RULES: List[Tuple[Category, Tuple[str, ...]]] = [
    (Category.LOAN_CORRESPONDENCE, ("loan", "credit", "mortgage", "application")),
    (Category.ACCOUNT_STATEMENT, ("statement", "balance", "audit", "reconciliation")),
    (Category.TRANSACTION_ALERT, ("alert", "fraud", "suspicious", "failed login", "security")),
    (Category.PAYMENT_NOTIFICATION, ("payment", "transfer", "remittance", "swift")),
]

# Priority rules in evaluation order
PRIORITY_RULES: List[Tuple[Priority, Tuple[str, ...]]] = [
    (Priority.URGENT, ("urgent", "immediate", "fraud", "unauthorized", "critical")),
    (Priority.HIGH, ("review", "verify", "action required")),
]

DEFAULT_CATEGORY = Category.GENERAL
DEFAULT_PRIORITY = Priority.MEDIUM

# High value heuristics (UGX amounts are routinely in the millions).
# Six trailing zeros, optionally grouped by a comma or space: 5000000, 5,000,000, 5 000 000
LARGE_AMOUNT_WORDS = ("million", "billion")
LARGE_AMOUNT_PATTERN = re.compile(r"\d[\d,]*?[\s,]?000[\s,]?000")


@dataclass(frozen=True)
class ClassificationResult:
    """Result of classifying a piece of correspondence."""
    category: Category
    priority: Priority

    def to_dict(self) -> Dict[str, str]:
        return {
            "category": self.category.value,
            "priority": self.priority.value,
        }


def _first_match(text: str, rules, default):
    for value, keywords in rules:
        if any(keyword in text for keyword in keywords):
            return value
    return default


def has_large_amount_cue(text: str) -> bool:
    """Check for a large-currency cue in already lower-cased text."""
    if any(word in text for word in LARGE_AMOUNT_WORDS):
        return True
    return LARGE_AMOUNT_PATTERN.search(text) is not None


def classify(subject: str, body: str) -> ClassificationResult:
    """
    Classify correspondence into (category, priority).

    Args:
        subject: Message subject (may be empty)
        body: Message body (may be empty)

    Returns:
        ClassificationResult, always.
    """
    text = f"{subject or ''} {body or ''}".lower()

    category = _first_match(text, CATEGORY_RULES, DEFAULT_CATEGORY)
    priority = _first_match(text, PRIORITY_RULES, DEFAULT_PRIORITY)

    if priority in (Priority.MEDIUM, Priority.HIGH) and has_large_amount_cue(text):
        priority = Priority.HIGH

    return ClassificationResult(category=category, priority=priority)
