"""
Test Data Generator: transaction specs, scenarios and deliberately bad input.

Amounts follow a currency-aware policy:
  - ranges are expressed in USD-equivalent units and scaled by the
    currency's multiplier, so amounts stay economically comparable
  - without an explicit range, credits draw from [10, 5000] and debits from
    [1, 500] (scaled), keeping debits safely under typical funded balances
  - results are rounded to the currency's natural precision (whole units for
    zero-decimal currencies, cents otherwise)
  - a range with no representable amount at that precision, or lying wholly
    above the business-rule maximum, raises ``ValueError``

Pass ``seed`` for reproducible sequences.
"""

from __future__ import annotations

import logging
import random
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Any

from wallet_harness.exceptions import UnknownScenarioError
from wallet_harness.models import (
    AmountRange,
    HarnessConfig,
    InvalidationKind,
    ScenarioName,
    TestScenario,
    TestUser,
    TransactionTemplate,
    TransactionType,
)

logger = logging.getLogger(__name__)

# (floor, ceiling) in USD-equivalent units when the caller gives no range
TYPE_SUB_RANGES: dict[str, tuple[float, float]] = {
    TransactionType.CREDIT.value: (10.0, 5000.0),
    TransactionType.DEBIT.value: (1.0, 500.0),
}

MAX_SCENARIO_SIZE = 500

_PROCEDURAL_SIZES = {
    ScenarioName.TRADING.value: 20,
    ScenarioName.MICROPAYMENTS.value: 50,
    ScenarioName.STRESS.value: 100,
}

_LITERAL_SCENARIOS: dict[str, list[dict[str, Any]]] = {
    ScenarioName.ONBOARDING.value: [
        {"type": "credit", "currency": "USD", "amount": 1000.00},
        {"type": "debit", "currency": "USD", "amount": 50.00},
        {"type": "credit", "currency": "EUR", "amount": 500.00},
        {"type": "debit", "currency": "EUR", "amount": 25.00},
    ],
    ScenarioName.ARBITRAGE.value: [
        {"type": "credit", "currency": "USD", "amount": 10000.00},
        {"type": "debit", "currency": "USD", "amount": 5000.00},
        {"type": "credit", "currency": "EUR", "amount": 4200.00},
        {"type": "debit", "currency": "EUR", "amount": 2100.00},
        {"type": "credit", "currency": "GBP", "amount": 1800.00},
    ],
}


class TestDataGenerator:
    """Produces valid, boundary and invalid-by-construction transaction data."""
    __test__ = False

    def __init__(self, config: HarnessConfig | None = None, seed: int | None = None):
        self.config = config or HarnessConfig()
        self._rng = random.Random(seed)
        self._custom_scenarios: dict[str, TestScenario] = {}

    # ── primitives ──────────────────────────────────────────────────────
    def random_currency(self, currencies: list[str] | None = None) -> str:
        return self._rng.choice(currencies or self.config.currencies)

    def random_transaction_type(self) -> str:
        return self._rng.choice([t.value for t in TransactionType])

    def _quantum(self, currency: str) -> Decimal:
        return Decimal("1") if currency in self.config.zero_decimal_currencies else Decimal("0.01")

    def round_for_currency(self, amount: float, currency: str) -> float:
        """Round to whole units for zero-decimal currencies, to cents otherwise."""
        return float(Decimal(str(amount)).quantize(self._quantum(currency), rounding=ROUND_HALF_UP))

    def generate_amount(
        self,
        amount_range: AmountRange | None = None,
        currency: str = "USD",
        transaction_type: str = TransactionType.CREDIT.value,
    ) -> float:
        multiplier = self.config.currency_multipliers.get(currency, 1)
        limits = self.config.transaction_limits

        if amount_range is not None:
            low = amount_range.min if amount_range.min is not None else limits.min_amount
            high = amount_range.max if amount_range.max is not None else limits.max_amount
            low, high = low * multiplier, high * multiplier
        else:
            floor, ceiling = TYPE_SUB_RANGES.get(transaction_type, TYPE_SUB_RANGES["credit"])
            low = max(limits.min_amount, floor) * multiplier
            high = min(limits.max_amount, ceiling) * multiplier
        high = min(high, self.config.rules.max_amount)

        # bounds snapped to the currency's precision; never below one unit
        quantum = self._quantum(currency)
        low_q = max(Decimal(str(low)).quantize(quantum, rounding=ROUND_CEILING), quantum)
        high_q = Decimal(str(high)).quantize(quantum, rounding=ROUND_FLOOR)
        if low_q > high_q:
            raise ValueError(
                f"No {currency} amount in [{low}, {high}] at precision {quantum} "
                f"and within the {self.config.rules.max_amount} maximum"
            )

        drawn = Decimal(str(self._rng.uniform(float(low_q), float(high_q))))
        amount = drawn.quantize(quantum, rounding=ROUND_HALF_UP)
        return float(min(max(amount, low_q), high_q))

    # ── valid specs ─────────────────────────────────────────────────────
    def generate_transaction(
        self,
        currency: str | None = None,
        transaction_type: str | TransactionType | None = None,
        amount_range: AmountRange | None = None,
        currencies: list[str] | None = None,
    ) -> dict[str, Any]:
        currency = currency or self.random_currency(currencies)
        if isinstance(transaction_type, TransactionType):
            transaction_type = transaction_type.value
        transaction_type = transaction_type or self.random_transaction_type()
        return {
            "currency": currency,
            "amount": self.generate_amount(amount_range, currency, transaction_type),
            "type": transaction_type,
        }

    def from_template(self, template: TransactionTemplate) -> dict[str, Any]:
        return self.generate_transaction(
            currency=template.currency,
            transaction_type=template.type,
            amount_range=template.amount_range,
        )

    def generate_multiple_transactions(
        self,
        count: int,
        currencies: list[str] | None = None,
        transaction_type: str | TransactionType | None = None,
        amount_range: AmountRange | None = None,
    ) -> list[dict[str, Any]]:
        return [
            self.generate_transaction(
                transaction_type=transaction_type,
                amount_range=amount_range,
                currencies=currencies,
            )
            for _ in range(count)
        ]

    # ── boundary values ─────────────────────────────────────────────────
    def edge_case_amounts(self) -> dict[str, float]:
        limits = self.config.transaction_limits
        return {
            "minimum": limits.min_amount,
            "maximum": limits.max_amount,
            "just_over_minimum": round(limits.min_amount + 0.01, 2),
            "just_under_maximum": round(limits.max_amount - 0.01, 2),
            "one_decimal": 10.1,
            "two_decimals": 10.12,
            "three_decimals": 10.123,
            "four_decimals": 10.1234,
            "large_round": 1000.00,
            "very_small": 0.01,
        }

    def generate_boundary_transactions(
        self,
        currency: str = "USD",
        transaction_type: str = TransactionType.CREDIT.value,
    ) -> dict[str, dict[str, Any]]:
        """One literal spec per edge-case amount, keyed by the edge case name."""
        return {
            name: {"currency": currency, "amount": amount, "type": transaction_type}
            for name, amount in self.edge_case_amounts().items()
        }

    # ── invalid-by-construction specs ───────────────────────────────────
    def generate_invalid_transaction(self, kind: InvalidationKind | str) -> dict[str, Any]:
        kind = InvalidationKind(kind)
        base = self.generate_transaction()

        if kind is InvalidationKind.NULL_VALUES:
            return {"currency": None, "amount": None, "type": None}

        omitted = {
            InvalidationKind.MISSING_CURRENCY: "currency",
            InvalidationKind.MISSING_AMOUNT: "amount",
            InvalidationKind.MISSING_TYPE: "type",
        }
        if kind in omitted:
            base.pop(omitted[kind])
            return base

        overrides: dict[InvalidationKind, dict[str, Any]] = {
            InvalidationKind.NEGATIVE_AMOUNT: {"amount": -abs(base["amount"])},
            InvalidationKind.ZERO_AMOUNT: {"amount": 0},
            InvalidationKind.HUGE_AMOUNT: {"amount": 99999999.99},
            InvalidationKind.INVALID_CURRENCY: {"currency": "INVALID"},
            InvalidationKind.LOWERCASE_CURRENCY: {"currency": "usd"},
            InvalidationKind.NUMERIC_CURRENCY: {"currency": "123"},
            InvalidationKind.INVALID_TYPE: {"type": "transfer"},
            InvalidationKind.STRING_AMOUNT: {"amount": "not_a_number"},
            InvalidationKind.TOO_MANY_DECIMALS: {"amount": 123.123456},
        }
        return {**base, **overrides[kind]}

    # ── scenarios ───────────────────────────────────────────────────────
    def register_scenario(self, scenario: TestScenario) -> None:
        if scenario.name in self._custom_scenarios:
            logger.warning("Scenario '%s' re-registered; previous definition replaced", scenario.name)
        self._custom_scenarios[scenario.name] = scenario

    @property
    def scenario_names(self) -> list[str]:
        builtin = [s.value for s in ScenarioName]
        return builtin + [n for n in self._custom_scenarios if n not in builtin]

    def resolve_steps(self, steps: list[dict[str, Any] | TransactionTemplate]) -> list[dict[str, Any]]:
        """Fill templates; literal payloads are copied verbatim."""
        return [
            self.from_template(step) if isinstance(step, TransactionTemplate) else dict(step)
            for step in steps
        ]

    def generate_scenario(self, name: str | ScenarioName, size: int | None = None) -> list[dict[str, Any]]:
        """Resolve a scenario name to a concrete list of transaction specs.

        Literal scenarios always return the same sequence.  Procedural ones
        return ``size`` freshly drawn specs (default per scenario, capped at
        ``MAX_SCENARIO_SIZE``).
        """
        key = name.value if isinstance(name, ScenarioName) else name

        if key in self._custom_scenarios:
            return self.resolve_steps(self._custom_scenarios[key].steps)

        if key in _LITERAL_SCENARIOS:
            return [dict(step) for step in _LITERAL_SCENARIOS[key]]

        if key not in _PROCEDURAL_SIZES:
            raise UnknownScenarioError(key)

        count = min(size if size is not None else _PROCEDURAL_SIZES[key], MAX_SCENARIO_SIZE)

        if key == ScenarioName.TRADING.value:
            return [
                self.generate_transaction(
                    currencies=["USD", "EUR", "GBP"],
                    amount_range=AmountRange(min=100, max=2000),
                )
                for _ in range(count)
            ]
        if key == ScenarioName.MICROPAYMENTS.value:
            return [
                self.generate_transaction(
                    currency="USD",
                    transaction_type=TransactionType.DEBIT,
                    amount_range=AmountRange(min=0.01, max=5.00),
                )
                for _ in range(count)
            ]
        return self.generate_multiple_transactions(count)

    # ── users ───────────────────────────────────────────────────────────
    def _available_users(self, exclude: list[str] | None) -> list[TestUser]:
        excluded = set(exclude or [])
        return [u for u in self.config.test_users if u.username not in excluded]

    def random_user(self, exclude: list[str] | None = None) -> TestUser:
        users = self._available_users(exclude)
        if not users:
            raise ValueError("No users available matching criteria")
        return self._rng.choice(users)

    def multiple_users(self, count: int, exclude: list[str] | None = None) -> list[TestUser]:
        users = self._available_users(exclude)
        if count > len(users):
            raise ValueError(f"Cannot get {count} users, only {len(users)} available")
        return self._rng.sample(users, count)
