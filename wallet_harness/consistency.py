"""
Consistency checks across transactions and wallet snapshots.

These catch disagreements between entities that each pass their own
contract: a debit against a currency the wallet does not hold, a finished
transaction whose balance movement does not match ``prior ± amount``, or an
operation that touched another currency's clip.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from wallet_harness import predicates
from wallet_harness.models import TransactionStatus, TransactionType, ValidationResult, ViolationKind


def _result(name: str, errors: list[str], codes: list[str], data: Any) -> ValidationResult:
    return ValidationResult(
        valid=not errors,
        kind=ViolationKind.CONSISTENCY,
        name=name,
        errors=errors,
        codes=codes,
        data=data,
    )


def check_debit_currency(spec: Mapping[str, Any], wallet: Mapping[str, Any] | None) -> ValidationResult:
    """A debit must reference a currency already present in the wallet."""
    errors: list[str] = []
    codes: list[str] = []
    if (
        wallet is not None
        and spec.get("type") == TransactionType.DEBIT.value
        and predicates.find_clip(wallet, spec.get("currency")) is None
    ):
        errors.append("Cannot debit from non-existent currency")
        codes.append("DEBIT_UNKNOWN_CURRENCY")
    return _result("debit-currency", errors, codes, spec)


def check_transaction_state(transaction: Any) -> ValidationResult:
    """Status/outcome pairing and timestamp ordering of a transaction body."""
    errors: list[str] = []
    codes: list[str] = []
    if not isinstance(transaction, Mapping):
        return _result("transaction-state", ["Transaction body is not an object"], ["NOT_AN_OBJECT"], transaction)

    status = transaction.get("status")
    outcome = transaction.get("outcome")

    if not predicates.is_valid_status(status):
        errors.append(f"Unknown transaction status: {status!r}")
        codes.append("UNKNOWN_STATUS")
    if status != TransactionStatus.FINISHED.value and outcome is not None:
        errors.append(f"Outcome {outcome!r} reported for a {status} transaction")
        codes.append("OUTCOME_BEFORE_FINISH")
    if status == TransactionStatus.FINISHED.value and not predicates.is_valid_outcome(outcome):
        errors.append(f"Unknown transaction outcome: {outcome!r}")
        codes.append("UNKNOWN_OUTCOME")

    created = predicates.parse_datetime(transaction.get("createdAt"))
    updated = predicates.parse_datetime(transaction.get("updatedAt"))
    if created and updated and created.tzinfo and updated.tzinfo and updated < created:
        errors.append("updatedAt precedes createdAt")
        codes.append("TIMESTAMP_ORDER")

    return _result("transaction-state", errors, codes, transaction)


def check_wallet_snapshot(wallet: Any) -> ValidationResult:
    """Every clip balance is non-negative and clip currencies are unique."""
    errors: list[str] = []
    codes: list[str] = []
    clips = wallet.get("currencyClips") if isinstance(wallet, Mapping) else None
    seen: set[Any] = set()
    for clip in clips or []:
        if not isinstance(clip, Mapping):
            continue
        currency = clip.get("currency")
        balance = clip.get("balance")
        if predicates.is_number(balance) and balance < 0:
            errors.append(f"Negative balance {balance} for {currency}")
            codes.append("NEGATIVE_BALANCE")
        if currency in seen:
            errors.append(f"Duplicate currency clip for {currency}")
            codes.append("DUPLICATE_CLIP")
        seen.add(currency)
    return _result("wallet-snapshot", errors, codes, wallet)


def expected_balance(prior_balance: Any, amount: Any, transaction_type: str) -> Decimal:
    prior = predicates.to_decimal(prior_balance) or Decimal(0)
    delta = predicates.to_decimal(amount) or Decimal(0)
    if transaction_type == TransactionType.CREDIT.value:
        return prior + delta
    return prior - delta


def check_balance_update(
    prior_wallet: Mapping[str, Any],
    post_wallet: Mapping[str, Any],
    spec: Mapping[str, Any],
    tolerance: float = 0.01,
) -> ValidationResult:
    """Compare snapshots taken around one approved transaction.

    Checks ``|post - (prior ± amount)| <= tolerance`` for the transaction's
    currency, a strictly increased ``transactionCount`` for it, and that no
    other currency's ``transactionCount`` moved.
    """
    errors: list[str] = []
    codes: list[str] = []
    currency = spec.get("currency")

    prior_clip = predicates.find_clip(prior_wallet, currency)
    post_clip = predicates.find_clip(post_wallet, currency)
    prior_balance = prior_clip.get("balance", 0) if prior_clip else 0
    prior_count = prior_clip.get("transactionCount", 0) if prior_clip else 0

    if post_clip is None:
        errors.append(f"Currency clip for {currency} should exist")
        codes.append("MISSING_CLIP")
    else:
        expected = expected_balance(prior_balance, spec.get("amount"), spec.get("type"))
        actual = post_clip.get("balance")
        if not predicates.is_balance_change_within(actual, expected, tolerance):
            actual_dec = predicates.to_decimal(actual)
            difference = abs(expected - actual_dec) if actual_dec is not None else "n/a"
            errors.append(
                f"Balance should be updated correctly. Expected: {expected}, "
                f"Actual: {actual}, Difference: {difference}"
            )
            codes.append("BALANCE_MISMATCH")
        if not post_clip.get("transactionCount", 0) > prior_count:
            errors.append(f"Transaction count for {currency} should be incremented")
            codes.append("COUNT_NOT_INCREMENTED")

    for clip in post_wallet.get("currencyClips") or []:
        other = clip.get("currency")
        if other == currency:
            continue
        before = predicates.find_clip(prior_wallet, other)
        before_count = before.get("transactionCount", 0) if before else 0
        if clip.get("transactionCount", 0) != before_count:
            errors.append(
                f"Transaction count for {other} changed from {before_count} "
                f"to {clip.get('transactionCount')} during a {currency} operation"
            )
            codes.append("CURRENCY_ISOLATION")

    snapshot = check_wallet_snapshot(post_wallet)
    errors.extend(snapshot.errors)
    codes.extend(snapshot.codes)

    return _result("balance-update", errors, codes, {"prior": prior_wallet, "post": post_wallet, "spec": spec})
