"""
Unit tests for the Correspondence Classifier.
Tests keyword rules and large-amount escalation in services/correspondence_classifier.py
"""
import pytest

from services.correspondence_classifier import classify, has_large_amount_cue, ClassificationResult
from services.hub_models import Category, Priority


class TestCategoryRules:
    """Test first-match category selection."""

    def test_loan_keywords(self):
        result = classify("Mortgage renewal", "")
        assert result.category == Category.LOAN_CORRESPONDENCE

    def test_statement_keywords(self):
        result = classify("Quarterly reconciliation", "see attached")
        assert result.category == Category.ACCOUNT_STATEMENT

    def test_alert_keywords(self):
        result = classify("Failed login detected", "")
        assert result.category == Category.TRANSACTION_ALERT

    def test_payment_keywords(self):
        result = classify("SWIFT remittance", "")
        assert result.category == Category.PAYMENT_NOTIFICATION

    def test_default_general(self):
        result = classify("Branch opening hours", "We will open late on Monday.")
        assert result.category == Category.GENERAL
        assert result.priority == Priority.MEDIUM

    def test_loan_wins_over_statement(self):
        """Loan rules are evaluated before statement rules."""
        result = classify("Loan balance", "")
        assert result.category == Category.LOAN_CORRESPONDENCE

    def test_case_insensitive(self):
        result = classify("PAYMENT RECEIVED", "")
        assert result.category == Category.PAYMENT_NOTIFICATION

    def test_body_is_matched(self):
        result = classify("Notice", "your transfer has completed")
        assert result.category == Category.PAYMENT_NOTIFICATION


class TestPriorityRules:
    """Test priority selection and escalation."""

    def test_urgent_fraud_alert(self):
        result = classify("URGENT: Suspicious fraud activity", "")
        assert result.priority == Priority.URGENT
        assert result.category == Category.TRANSACTION_ALERT

    def test_loan_application_review(self):
        result = classify("Loan application review", "")
        assert result.category == Category.LOAN_CORRESPONDENCE
        assert result.priority == Priority.HIGH

    def test_large_amount_escalates_medium(self):
        result = classify("Routine notice", "account balance 5,000,000")
        assert result.category == Category.ACCOUNT_STATEMENT
        assert result.priority == Priority.HIGH

    def test_million_word_escalates(self):
        result = classify("Notice", "Amount: 3 million shillings")
        assert result.priority == Priority.HIGH

    def test_urgent_never_downgraded(self):
        result = classify("Critical transfer", "UGX 9,000,000 billion")
        assert result.priority == Priority.URGENT

    def test_small_amount_stays_medium(self):
        result = classify("Notice", "Amount: UGX 45,000")
        assert result.priority == Priority.MEDIUM

    def test_never_produces_low(self):
        for subject in ("", "hello", "loan", "fraud", "review"):
            assert classify(subject, "").priority != Priority.LOW

    def test_empty_input(self):
        result = classify("", "")
        assert result == ClassificationResult(Category.GENERAL, Priority.MEDIUM)

    def test_none_input(self):
        """The classifier never fails, even on missing text."""
        result = classify(None, None)
        assert result.category == Category.GENERAL


class TestLargeAmountCue:
    """Test the currency heuristic on lower-cased text."""

    @pytest.mark.parametrize("text", ["5000000", "5,000,000", "5 000 000", "ugx 12,000,000", "two billion"])
    def test_matches(self, text):
        assert has_large_amount_cue(text) is True

    @pytest.mark.parametrize("text", ["500000", "50,000", "ref #4492", ""])
    def test_no_match(self, text):
        assert has_large_amount_cue(text) is False


class TestClassificationResult:

    def test_to_dict(self):
        result = ClassificationResult(Category.LOAN_CORRESPONDENCE, Priority.HIGH)
        assert result.to_dict() == {"category": "Loan Correspondence", "priority": "HIGH"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
