"""
Contract Validator: structural checks of wallet-service payloads.

Every wire shape is a pydantic model registered under a fixed name.  Shapes
are closed (unknown keys rejected) unless a model opts into ``extra="allow"``.
Shared sub-shapes are referenced by type, so ``CurrencyClipSchema`` is the
single definition used by both ``currency-clip`` and ``wallet``, and
``TransactionSchema`` by both ``transaction`` and ``transaction-list``.

The validator knows nothing about business semantics and has no side
effects: it returns a ``ValidationResult`` and leaves logging to the caller.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    StringConstraints,
    ValidationError,
)

from wallet_harness import predicates
from wallet_harness.models import ValidationResult, ViolationKind


# ---------------------------------------------------------------------------
# Formats
# ---------------------------------------------------------------------------

def _uuid_format(value: str) -> str:
    if not predicates.is_uuid(value):
        raise ValueError("must be a UUID")
    return value


def _datetime_format(value: str) -> str:
    if not predicates.is_iso8601_datetime(value):
        raise ValueError("must be an ISO 8601 date-time with a UTC offset")
    return value


def _email_format(value: str) -> str:
    if not predicates.is_email(value):
        raise ValueError("must be an email address")
    return value


Uuid = Annotated[StrictStr, AfterValidator(_uuid_format)]
DateTime = Annotated[StrictStr, AfterValidator(_datetime_format)]
Email = Annotated[StrictStr, AfterValidator(_email_format)]
CurrencyCode = Annotated[StrictStr, StringConstraints(pattern=r"^[A-Z]{3}$")]
Number = StrictFloat  # ints are accepted, bools and strings are not

TransactionTypeLiteral = Literal["credit", "debit"]
StatusLiteral = Literal["pending", "finished"]
OutcomeLiteral = Literal["approved", "denied"]


class _ClosedSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")


class _OpenSchema(BaseModel):
    model_config = ConfigDict(extra="allow")


# ---------------------------------------------------------------------------
# Schema catalog
# ---------------------------------------------------------------------------

class UserTokenSchema(_ClosedSchema):
    token: Annotated[StrictStr, Field(min_length=10)]
    refreshToken: Annotated[StrictStr, Field(min_length=10)]
    expiry: DateTime
    userId: Uuid


class UserInfoSchema(_ClosedSchema):
    walletId: Uuid
    email: Email
    name: StrictStr | None = None
    locale: StrictStr | None = None
    region: StrictStr | None = None
    timezone: StrictStr | None = None


class CurrencyClipSchema(_ClosedSchema):
    currency: CurrencyCode
    balance: Annotated[Number, Field(ge=0)]
    lastTransaction: DateTime
    transactionCount: Annotated[StrictInt, Field(ge=0)]


class WalletSchema(_ClosedSchema):
    walletId: Uuid
    currencyClips: list[CurrencyClipSchema]
    createdAt: DateTime
    updatedAt: DateTime


class TransactionRequestSchema(_ClosedSchema):
    currency: CurrencyCode
    amount: Annotated[Number, Field(ge=0.01, le=1_000_000)]
    type: TransactionTypeLiteral


class TransactionResponseSchema(_ClosedSchema):
    transactionId: Uuid
    status: StatusLiteral
    outcome: OutcomeLiteral | None = None
    createdAt: DateTime
    updatedAt: DateTime


class TransactionSchema(_ClosedSchema):
    transactionId: Uuid
    currency: CurrencyCode
    amount: Annotated[Number, Field(ge=0.01)]
    type: TransactionTypeLiteral
    status: StatusLiteral
    outcome: OutcomeLiteral | None = None
    createdAt: DateTime
    updatedAt: DateTime


class TransactionListSchema(_ClosedSchema):
    transactions: list[TransactionSchema]
    totalCount: Annotated[StrictInt, Field(ge=0)]
    currentPage: Annotated[StrictInt, Field(ge=1)]
    totalPages: Annotated[StrictInt, Field(ge=0)]


class HealthSchema(_ClosedSchema):
    status: Literal["healthy", "unhealthy"]
    timestamp: DateTime
    database: Literal["connected", "disconnected"]


class WakeupSchema(_OpenSchema):
    status: Literal["awake"]
    message: StrictStr
    timestamp: DateTime
    error: StrictStr | None = None


class ErrorSchema(_OpenSchema):
    detail: StrictStr | None = None
    message: StrictStr | None = None
    error: StrictStr | None = None
    status_code: StrictInt | None = None


SCHEMA_CATALOG: dict[str, type[BaseModel]] = {
    "user-token": UserTokenSchema,
    "user-info": UserInfoSchema,
    "wallet": WalletSchema,
    "currency-clip": CurrencyClipSchema,
    "transaction-request": TransactionRequestSchema,
    "transaction": TransactionSchema,
    "transaction-response": TransactionResponseSchema,
    "transaction-list": TransactionListSchema,
    "health": HealthSchema,
    "wakeup": WakeupSchema,
    "error": ErrorSchema,
}


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------

def _format_error(err: dict[str, Any]) -> str:
    location = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
    return f"{location}: {err.get('msg', 'invalid')}"


class ContractValidator:
    """Validates payloads against the registered schema catalog."""

    def __init__(self, catalog: dict[str, type[BaseModel]] | None = None):
        self._schemas: dict[str, type[BaseModel]] = dict(catalog or SCHEMA_CATALOG)

    @property
    def schema_names(self) -> list[str]:
        return list(self._schemas)

    def json_schema(self, schema_name: str) -> dict[str, Any]:
        """JSON Schema export of a registered shape (sub-shapes under ``$defs``)."""
        return self._schemas[schema_name].model_json_schema()

    def validate(self, data: Any, schema_name: str) -> ValidationResult:
        model = self._schemas.get(schema_name)
        if model is None:
            return ValidationResult(
                valid=False,
                kind=ViolationKind.SCHEMA,
                name=schema_name,
                errors=[f"Schema '{schema_name}' not found"],
                codes=["unknown_schema"],
                data=data,
            )

        try:
            model.model_validate(data)
        except ValidationError as exc:
            details = exc.errors(include_url=False)
            return ValidationResult(
                valid=False,
                kind=ViolationKind.SCHEMA,
                name=schema_name,
                errors=[_format_error(d) for d in details],
                codes=[d["type"] for d in details],
                data=data,
            )

        return ValidationResult(valid=True, kind=ViolationKind.SCHEMA, name=schema_name, data=data)
