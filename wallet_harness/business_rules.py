"""
Business Rules: domain invariants checked independently of wire shape.

Evaluated BEFORE a transaction is sent, these let a scenario reject a spec
without calling the wallet service.  Every rule is evaluated on every call
(no short-circuit), so one result can carry several violations:

  1. currency is three uppercase letters
  2. amount is positive
  3. amount does not exceed the configured maximum
  4. amount has at most ``max_decimal_places`` fractional digits
  5. a debit is covered by the wallet snapshot's clip for that currency
     (skipped when no snapshot is supplied)

The validator is pure: no I/O, no logging.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from wallet_harness import predicates
from wallet_harness.models import RuleConfig, TransactionType, ValidationResult, ViolationKind

RULE_SET_NAME = "transaction-business-rules"

INVALID_CURRENCY = "INVALID_CURRENCY"
NON_NUMERIC_AMOUNT = "NON_NUMERIC_AMOUNT"
NON_POSITIVE_AMOUNT = "NON_POSITIVE_AMOUNT"
AMOUNT_ABOVE_MAXIMUM = "AMOUNT_ABOVE_MAXIMUM"
EXCESS_PRECISION = "EXCESS_PRECISION"
INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"


class BusinessRuleValidator:
    """Checks transaction specs against the wallet's business rules."""

    def __init__(self, rules: RuleConfig | None = None):
        self.rules = rules or RuleConfig()

    def check_business_rules(
        self,
        spec: Mapping[str, Any] | None,
        wallet: Mapping[str, Any] | None = None,
    ) -> ValidationResult:
        payload = spec if isinstance(spec, Mapping) else {}
        currency = payload.get("currency")
        amount = payload.get("amount")
        errors: list[str] = []
        codes: list[str] = []

        def violate(code: str, message: str) -> None:
            codes.append(code)
            errors.append(message)

        if not predicates.is_currency_code(currency):
            violate(INVALID_CURRENCY, "Currency must be 3 uppercase letters")

        if not predicates.is_number(amount):
            violate(NON_NUMERIC_AMOUNT, "Amount must be a number")
        else:
            if amount <= 0:
                violate(NON_POSITIVE_AMOUNT, "Amount must be positive")
            if amount > self.rules.max_amount:
                violate(AMOUNT_ABOVE_MAXIMUM, "Amount exceeds maximum limit")
            if not predicates.has_decimal_precision(amount, self.rules.max_decimal_places):
                violate(
                    EXCESS_PRECISION,
                    f"Amount can have maximum {self.rules.max_decimal_places} decimal places",
                )

        if payload.get("type") == TransactionType.DEBIT.value and wallet is not None:
            if not predicates.has_sufficient_balance(wallet, currency, amount):
                clip = predicates.find_clip(wallet, currency)
                available = clip.get("balance", 0) if clip is not None else 0
                violate(
                    INSUFFICIENT_BALANCE,
                    f"Insufficient balance for {currency}. "
                    f"Required: {amount}, Available: {available}",
                )

        return ValidationResult(
            valid=not errors,
            kind=ViolationKind.BUSINESS_RULE,
            name=RULE_SET_NAME,
            errors=errors,
            codes=codes,
            data=spec,
        )


def only_insufficient_balance(result: ValidationResult) -> bool:
    """True when the sole violations in ``result`` are insufficient-balance errors."""
    return bool(result.codes) and all(code == INSUFFICIENT_BALANCE for code in result.codes)
