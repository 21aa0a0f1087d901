"""
Tests for the business-rule validator.
"""

import pytest

from wallet_harness.business_rules import (
    AMOUNT_ABOVE_MAXIMUM,
    EXCESS_PRECISION,
    INSUFFICIENT_BALANCE,
    INVALID_CURRENCY,
    NON_NUMERIC_AMOUNT,
    NON_POSITIVE_AMOUNT,
    RULE_SET_NAME,
    BusinessRuleValidator,
    only_insufficient_balance,
)
from wallet_harness.data_generator import TestDataGenerator
from wallet_harness.models import InvalidationKind, RuleConfig, ViolationKind

WALLET = {"currencyClips": [
    {"currency": "USD", "balance": 500.0, "transactionCount": 2},
    {"currency": "EUR", "balance": 50.0, "transactionCount": 1},
]}


@pytest.fixture
def validator():
    return BusinessRuleValidator()


def test_valid_credit(validator):
    result = validator.check_business_rules({"currency": "USD", "amount": 100.50, "type": "credit"})
    assert result.valid
    assert result.name == RULE_SET_NAME
    assert result.kind == ViolationKind.BUSINESS_RULE


def test_negative_amount(validator):
    result = validator.check_business_rules({"currency": "USD", "amount": -100, "type": "credit"})
    assert not result.valid
    assert result.errors == ["Amount must be positive"]
    assert result.codes == [NON_POSITIVE_AMOUNT]


def test_all_rules_are_reported(validator):
    result = validator.check_business_rules({"currency": "usd", "amount": 2_000_000.12345, "type": "credit"})
    assert result.codes == [INVALID_CURRENCY, AMOUNT_ABOVE_MAXIMUM, EXCESS_PRECISION]
    assert "Currency must be 3 uppercase letters" in result.errors
    assert "Amount exceeds maximum limit" in result.errors
    assert "Amount can have maximum 4 decimal places" in result.errors


def test_non_numeric_amount(validator):
    result = validator.check_business_rules({"currency": "USD", "amount": "10", "type": "credit"})
    assert result.codes == [NON_NUMERIC_AMOUNT]


@pytest.mark.parametrize("amount", [float("nan"), float("inf")])
def test_non_finite_amount(validator, amount):
    result = validator.check_business_rules({"currency": "USD", "amount": amount, "type": "credit"})
    assert not result.valid
    assert result.codes == [NON_NUMERIC_AMOUNT]


def test_configured_maximum():
    validator = BusinessRuleValidator(RuleConfig(max_amount=100))
    assert validator.check_business_rules({"currency": "USD", "amount": 100, "type": "credit"}).valid
    assert not validator.check_business_rules({"currency": "USD", "amount": 100.01, "type": "credit"}).valid


# ---------------------------------------------------------------------------
# Balance sufficiency
# ---------------------------------------------------------------------------

def test_debit_without_wallet_skips_balance(validator):
    assert validator.check_business_rules({"currency": "USD", "amount": 999999.99, "type": "debit"}).valid


def test_debit_within_balance(validator):
    assert validator.check_business_rules({"currency": "USD", "amount": 500, "type": "debit"}, WALLET).valid


def test_insufficient_balance_message(validator):
    result = validator.check_business_rules({"currency": "EUR", "amount": 75.5, "type": "debit"}, WALLET)
    assert result.codes == [INSUFFICIENT_BALANCE]
    assert result.errors == ["Insufficient balance for EUR. Required: 75.5, Available: 50.0"]
    assert only_insufficient_balance(result)


def test_missing_clip_reports_zero_available(validator):
    result = validator.check_business_rules({"currency": "GBP", "amount": 1, "type": "debit"}, WALLET)
    assert result.errors == ["Insufficient balance for GBP. Required: 1, Available: 0"]


def test_credit_ignores_balance(validator):
    assert validator.check_business_rules({"currency": "GBP", "amount": 1, "type": "credit"}, WALLET).valid


def test_only_insufficient_balance_with_other_errors(validator):
    result = validator.check_business_rules({"currency": "EUR", "amount": 75.12345, "type": "debit"}, WALLET)
    assert not only_insufficient_balance(result)
    assert not only_insufficient_balance(validator.check_business_rules({"currency": "USD", "amount": 1, "type": "credit"}))


# ---------------------------------------------------------------------------
# Invalid-by-construction payloads
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("kind", [
    InvalidationKind.NEGATIVE_AMOUNT,
    InvalidationKind.ZERO_AMOUNT,
    InvalidationKind.HUGE_AMOUNT,
    InvalidationKind.INVALID_CURRENCY,
    InvalidationKind.LOWERCASE_CURRENCY,
    InvalidationKind.NUMERIC_CURRENCY,
    InvalidationKind.MISSING_CURRENCY,
    InvalidationKind.MISSING_AMOUNT,
    InvalidationKind.STRING_AMOUNT,
    InvalidationKind.TOO_MANY_DECIMALS,
    InvalidationKind.NULL_VALUES,
])
def test_invalid_kinds_fail_and_are_idempotent(validator, kind):
    payload = TestDataGenerator(seed=3).generate_invalid_transaction(kind)
    first = validator.check_business_rules(payload)
    second = validator.check_business_rules(payload)
    assert not first.valid
    assert first.errors == second.errors


def test_non_mapping_spec(validator):
    result = validator.check_business_rules(None)
    assert not result.valid
    assert INVALID_CURRENCY in result.codes
