"""
Core data models for Wallet Harness.

Defines the domain enums, configuration tree, option structures and the
result records produced while driving the wallet service.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from wallet_harness.exceptions import TransportFailure


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TransactionType(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    FINISHED = "finished"


class TransactionOutcome(str, enum.Enum):
    APPROVED = "approved"
    DENIED = "denied"


class ViolationKind(str, enum.Enum):
    """Which validation layer produced a ``ValidationResult``."""
    SCHEMA = "schema"
    BUSINESS_RULE = "business_rule"
    CONSISTENCY = "consistency"


class OrderPolicy(str, enum.Enum):
    SEQUENTIAL = "sequential"
    UNORDERED = "unordered"


class ScenarioName(str, enum.Enum):
    """Built-in scenario narratives."""
    ONBOARDING = "onboarding"
    TRADING = "trading"
    ARBITRAGE = "arbitrage"
    MICROPAYMENTS = "micropayments"
    STRESS = "stress"


class InvalidationKind(str, enum.Enum):
    """Ways a transaction payload can be made invalid on purpose."""
    NEGATIVE_AMOUNT = "negative_amount"
    ZERO_AMOUNT = "zero_amount"
    HUGE_AMOUNT = "huge_amount"
    INVALID_CURRENCY = "invalid_currency"
    LOWERCASE_CURRENCY = "lowercase_currency"
    NUMERIC_CURRENCY = "numeric_currency"
    INVALID_TYPE = "invalid_type"
    MISSING_CURRENCY = "missing_currency"
    MISSING_AMOUNT = "missing_amount"
    MISSING_TYPE = "missing_type"
    STRING_AMOUNT = "string_amount"
    TOO_MANY_DECIMALS = "too_many_decimals"
    NULL_VALUES = "null_values"


# ---------------------------------------------------------------------------
# Configuration: loaded from wallet_harness.yaml or built from defaults
# ---------------------------------------------------------------------------

class TestUser(BaseModel):
    """A seeded account the harness can log in as."""
    __test__ = False

    username: str
    password: str
    name: str = ""


class TimeoutConfig(BaseModel):
    """All durations are in seconds."""
    request: float = 30.0
    performance: float = 5.0
    transaction_completion: float = 60.0
    poll_interval: float = 2.0
    wakeup: float = 120.0


class TransactionLimits(BaseModel):
    """Bounds used when generating amounts (generation policy, not an oracle)."""
    min_amount: float = 0.01
    max_amount: float = 10000.00


class RuleConfig(BaseModel):
    """Thresholds enforced by the business-rule and consistency oracles."""
    max_amount: float = 1_000_000
    max_decimal_places: int = 4
    balance_tolerance: float = 0.01


def _default_users() -> list[TestUser]:
    return [
        TestUser(username="alice.johnson", password="password123", name="Alice Johnson"),
        TestUser(username="bob.smith", password="password123", name="Bob Smith"),
        TestUser(username="carlos.rodriguez", password="password123", name="Carlos Rodriguez"),
        TestUser(username="diana.chen", password="password123", name="Diana Chen"),
        TestUser(username="erik.larsson", password="password123", name="Erik Larsson"),
    ]


class HarnessConfig(BaseModel):
    """Top-level harness configuration."""
    api_url: str = "https://api.ahmadwaqar.dev"
    service_id: str = "wallet-harness"
    log_level: str = "INFO"
    scenarios_dir: str | None = None
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    currencies: list[str] = Field(
        default_factory=lambda: ["USD", "EUR", "GBP", "JPY", "AUD", "CAD", "CHF", "SEK", "NOK", "DKK"]
    )
    test_users: list[TestUser] = Field(default_factory=_default_users)
    transaction_limits: TransactionLimits = Field(default_factory=TransactionLimits)
    rules: RuleConfig = Field(default_factory=RuleConfig)
    currency_multipliers: dict[str, float] = Field(
        default_factory=lambda: {
            "USD": 1, "EUR": 0.85, "GBP": 0.73, "JPY": 110, "AUD": 1.35, "CAD": 1.25,
            "CHF": 0.92, "SEK": 8.5, "NOK": 8.3, "DKK": 6.3, "AED": 3.67, "MXN": 20.5,
        }
    )
    zero_decimal_currencies: list[str] = Field(default_factory=lambda: ["JPY", "KRW"])


# ---------------------------------------------------------------------------
# Options: explicit replacements for loosely-shaped option objects
# ---------------------------------------------------------------------------

class SubmitOptions(BaseModel):
    """How a single transaction is submitted and checked.

    wait_for_completion:        poll a pending transaction until it is terminal
    max_wait:                   soft-timeout for polling (seconds); ``None`` uses
                                ``timeouts.transaction_completion``
    validate_schema:            check request/response payloads against contracts
    validate_business_rules:    run business rules before calling the service and
                                fail fast on violations
    allow_insufficient_balance: let a spec whose *only* violation is insufficient
                                balance through, to exercise the service's own
                                rejection path
    """
    wait_for_completion: bool = True
    max_wait: float | None = None
    validate_schema: bool = True
    validate_business_rules: bool = True
    allow_insufficient_balance: bool = False


class BatchOptions(BaseModel):
    """How a list of transaction specs is executed.

    order_policy:       ``sequential`` refreshes the wallet before each step and
                        waits ``inter_step_delay`` between steps; ``unordered``
                        issues every spec at once without refresh or polling
    inter_step_delay:   pause between sequential steps (seconds)
    validate_each:      schema + business-rule checks and balance verification
                        per step
    wait_for_completion: poll each sequential step to a terminal state
    allow_insufficient_balance: forwarded to ``SubmitOptions``
    """
    order_policy: OrderPolicy = OrderPolicy.SEQUENTIAL
    inter_step_delay: float = 0.5
    validate_each: bool = True
    wait_for_completion: bool = True
    allow_insufficient_balance: bool = False


# ---------------------------------------------------------------------------
# Scenario inputs
# ---------------------------------------------------------------------------

class AmountRange(BaseModel):
    """Caller-supplied amount bounds, in USD-equivalent units."""
    min: float | None = None
    max: float | None = None

    @model_validator(mode="after")
    def _check_order(self) -> AmountRange:
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"amount range min {self.min} exceeds max {self.max}")
        return self


class TransactionTemplate(BaseModel):
    """A spec with holes; missing fields are filled by the data generator."""
    model_config = ConfigDict(extra="forbid")

    currency: str | None = None
    type: TransactionType | None = None
    amount_range: AmountRange | None = None


class TestScenario(BaseModel):
    """A named, ordered sequence of literal payloads and templates."""
    __test__ = False

    name: str
    description: str = ""
    steps: list[dict[str, Any] | TransactionTemplate] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Runtime records
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthSession(BaseModel):
    """Credentials issued by ``/user/login``; never renewed by the harness."""
    token: str
    refresh_token: str
    user_id: str
    expiry: str
    username: str


class ValidationResult(BaseModel):
    """Outcome of a single schema, business-rule or consistency check."""
    model_config = ConfigDict(frozen=True)

    valid: bool
    kind: ViolationKind
    name: str
    errors: list[str] = Field(default_factory=list)
    codes: list[str] = Field(default_factory=list)
    data: Any = None


class ValidationReport(BaseModel):
    """All checks run for one transaction."""
    results: list[ValidationResult] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return all(r.valid for r in self.results)

    @property
    def failures(self) -> list[ValidationResult]:
        return [r for r in self.results if not r.valid]

    @property
    def summary(self) -> dict[str, int]:
        passed = sum(1 for r in self.results if r.valid)
        return {
            "total_checks": len(self.results),
            "passed": passed,
            "failed": len(self.results) - passed,
        }


class ApiResponse(BaseModel):
    """A wallet-service response kept as data, whatever its status."""
    endpoint: str
    status_code: int
    body: Any = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def raise_for_failure(self) -> ApiResponse:
        """Raise ``TransportFailure`` unless the response is 2xx."""
        if not self.ok:
            raise TransportFailure(self.endpoint, self.status_code, self.body)
        return self

    def field(self, name: str) -> Any:
        return self.body.get(name) if isinstance(self.body, dict) else None


class EndpointMetric(BaseModel):
    """One record for the harness-owned, append-only metric log."""
    endpoint: str
    duration_ms: float
    status_code: int
    timestamp: datetime = Field(default_factory=_utcnow)


class PerformanceMetric(BaseModel):
    """A closed timing span."""
    label: str
    duration_ms: float
    timestamp: datetime = Field(default_factory=_utcnow)
    expected_max_ms: float | None = None
    passed: bool | None = None


class DurationStats(BaseModel):
    total: int
    avg: float
    min: float
    max: float
    median: float


class TransactionResult(BaseModel):
    """Everything observed while running one transaction spec."""
    spec: Any
    transaction_id: str | None = None
    create_response: ApiResponse | None = None
    final_response: ApiResponse | None = None
    business_validation: ValidationResult | None = None
    report: ValidationReport = Field(default_factory=ValidationReport)
    locally_rejected: bool = False
    timed_out: bool = False

    @property
    def latest(self) -> ApiResponse | None:
        return self.final_response or self.create_response

    @property
    def status(self) -> str | None:
        return self.latest.field("status") if self.latest else None

    @property
    def outcome(self) -> str | None:
        return self.latest.field("outcome") if self.latest else None

    @property
    def is_terminal(self) -> bool:
        return self.status == TransactionStatus.FINISHED.value

    @property
    def approved(self) -> bool:
        return self.is_terminal and self.outcome == TransactionOutcome.APPROVED.value

    @property
    def accepted(self) -> bool:
        """The create call returned 2xx (the only success signal for unordered batches)."""
        return self.create_response is not None and self.create_response.ok


class BatchResult(BaseModel):
    order_policy: OrderPolicy
    results: list[TransactionResult] = Field(default_factory=list)
    balance_checks: list[ValidationResult] = Field(default_factory=list)

    @property
    def transaction_ids(self) -> list[str]:
        return [r.transaction_id for r in self.results if r.transaction_id]

    @property
    def ids_unique(self) -> bool:
        ids = self.transaction_ids
        return len(set(ids)) == len(ids)

    @property
    def successful(self) -> list[TransactionResult]:
        return [r for r in self.results if r.accepted]

    @property
    def valid(self) -> bool:
        return all(r.report.valid for r in self.results) and all(c.valid for c in self.balance_checks)


class NegativeOutcome(BaseModel):
    kind: InvalidationKind
    payload: dict[str, Any]
    response: ApiResponse
    error_schema: ValidationResult | None = None


class WorkflowReport(BaseModel):
    scenario: str
    batch: BatchResult
    final_wallet: dict[str, Any] | None = None
    wallet_schema: ValidationResult | None = None
    transaction_list_schema: ValidationResult | None = None
    total_count: int = 0

    @property
    def valid(self) -> bool:
        checks = [self.wallet_schema, self.transaction_list_schema]
        return self.batch.valid and all(c is not None and c.valid for c in checks)
